"""
Topic classification on top of geo detection, with an optional model-augmented
strategy that falls back to the heuristics on any bad output.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Pattern, Protocol, Sequence

from src.regional_news.gazetteer import TARGET_STATE_NAME, canonical_county, county_order
from src.regional_news.geo import DEFAULT_DETECTOR, GeoDetector
from src.regional_news.llm import TextGenerator, extract_json_object
from src.regional_news.models import Category, ClassificationResult

LOGGER = logging.getLogger(__name__)

MAX_MODEL_BODY_CHARS = 2000


def _compile(patterns: Sequence[str]) -> List[Pattern[str]]:
    return [re.compile(pattern, re.IGNORECASE) for pattern in patterns]


# Compound phrases only; a bare "school" or "storm" is too noisy.
CATEGORY_PATTERNS: Dict[Category, List[Pattern[str]]] = {
    Category.SPORTS: _compile(
        [
            r"\bfootball\b",
            r"\bbasketball\b",
            r"\bbaseball\b",
            r"\bsoftball\b",
            r"\bvolleyball\b",
            r"\bsoccer\b",
            r"\bwrestling\b",
            r"\bplayoffs?\b",
            r"\btournament\b",
            r"\bkhsaa\b",
            r"\bsweet (?:16|sixteen)\b",
            r"\bstate championship\b",
            r"\bhead coach\b",
            r"\bquarterback\b",
            r"\btouchdowns?\b",
            r"\bncaa\b",
            r"\bfinal score\b",
        ]
    ),
    Category.WEATHER: _compile(
        [
            r"\bweather (?:forecast|advisory|warning|alert|service)\b",
            r"\btornado (?:warning|watch|touchdown)\b",
            r"\bsevere (?:weather|storms?|thunderstorms?)\b",
            r"\bwinter (?:storm|weather)\b",
            r"\bflash flood(?:ing)?\b",
            r"\bflood (?:warning|watch|advisory)\b",
            r"\bnational weather service\b",
            r"\bheat (?:advisory|index|wave)\b",
            r"\bwind chill\b",
            r"\bfirst alert weather\b",
        ]
    ),
    Category.SCHOOLS: _compile(
        [
            r"\bschool board\b",
            r"\bboard of education\b",
            r"\bhigh school\b",
            r"\bschool district\b",
            r"\bpublic schools\b",
            r"\b(?:elementary|middle) school\b",
            r"\bsuperintendent of schools\b",
            r"\bschools superintendent\b",
            r"\bdepartment of education\b",
            r"\bteachers? union\b",
        ]
    ),
    Category.OBITUARIES: _compile(
        [
            r"\bobituar(?:y|ies)\b",
            r"\bfuneral home\b",
            r"\bsurvived by\b",
            r"\bin lieu of flowers\b",
            r"\bvisitation will be\b",
            r"\bcelebration of life\b",
            r"\bpreceded in death\b",
        ]
    ),
}
TOPIC_PRIORITY = (Category.SPORTS, Category.WEATHER, Category.SCHOOLS, Category.OBITUARIES)
# Out-of-state stories in these sections belong in the national feed; weather stays put.
NATIONAL_FOLDED_TOPICS = frozenset({Category.SPORTS, Category.SCHOOLS, Category.OBITUARIES})


def match_topic(text: str) -> Category | None:
    for category in TOPIC_PRIORITY:
        if any(pattern.search(text) for pattern in CATEGORY_PATTERNS[category]):
            return category
    return None


def resolve_category(topic: Category | None, is_state: bool) -> Category:
    if topic is None or topic is Category.TODAY:
        return Category.TODAY if is_state else Category.NATIONAL
    if not is_state and topic in NATIONAL_FOLDED_TOPICS:
        return Category.NATIONAL
    return topic


class Classifier(Protocol):
    def classify(self, title: str, lead: str) -> ClassificationResult:
        ...


class HeuristicClassifier:
    """Deterministic gazetteer + phrase-pattern classification."""

    def __init__(self, detector: GeoDetector = DEFAULT_DETECTOR) -> None:
        self.detector = detector

    def classify(self, title: str, lead: str) -> ClassificationResult:
        text = f"{title}\n\n{lead}" if title else lead
        geo = self.detector.detect(text, lead=lead)
        category = resolve_category(match_topic(text), geo.is_state)
        return ClassificationResult(
            category=category,
            is_state=geo.is_state,
            is_national=not geo.is_state,
            regions=list(geo.counties),
            locality=geo.city,
        )


CLASSIFY_SYSTEM_PROMPT = (
    f"You classify local news for a {TARGET_STATE_NAME} news site. "
    "Respond with one JSON object and nothing else: "
    '{"category": "<sports|weather|schools|obituaries|today|national>", '
    '"is_state": <true|false>, "counties": ["<county name>", ...]}. '
    f"Rules:\n- is_state is true only when the story happens in {TARGET_STATE_NAME} "
    f"or directly affects {TARGET_STATE_NAME} residents.\n"
    f"- counties lists only {TARGET_STATE_NAME} counties named or clearly implied; use [] when unsure.\n"
    f"- Use today for general {TARGET_STATE_NAME} news and national for everything outside the state.\n"
    "- Do not explain your answer."
)


class GenerativeClassifier(HeuristicClassifier):
    """Ask a model first; any parse error or out-of-enum value keeps the heuristic result."""

    def __init__(self, generator: TextGenerator, detector: GeoDetector = DEFAULT_DETECTOR) -> None:
        super().__init__(detector)
        self.generator = generator

    @staticmethod
    def build_prompt(title: str, lead: str) -> str:
        return f"Title: {title}\n\nArticle:\n{lead[:MAX_MODEL_BODY_CHARS]}\n\nJSON:"

    def classify(self, title: str, lead: str) -> ClassificationResult:
        baseline = super().classify(title, lead)
        try:
            raw = self.generator.generate(CLASSIFY_SYSTEM_PROMPT, self.build_prompt(title, lead), max_new_tokens=120)
        except Exception:  # noqa: BLE001
            LOGGER.warning("Model classification failed for '%s'; using heuristics", title, exc_info=True)
            return baseline
        parsed = self.parse_response(raw)
        if parsed is None:
            LOGGER.warning("Discarding unusable model classification for '%s': %r", title, (raw or "")[:200])
            return baseline
        category, is_state, counties = parsed
        if is_state and not counties:
            counties = list(baseline.regions)
        return ClassificationResult(
            category=resolve_category(category, is_state),
            is_state=is_state,
            is_national=not is_state,
            regions=counties if is_state else [],
            locality=baseline.locality if is_state else None,
        )

    @staticmethod
    def parse_response(raw: str | None) -> tuple[Category, bool, List[str]] | None:
        payload = extract_json_object(raw)
        if payload is None:
            return None
        category = Category.parse(payload.get("category"))
        is_state = payload.get("is_state")
        if category is None or not isinstance(is_state, bool):
            return None
        raw_counties = payload.get("counties") or []
        if isinstance(raw_counties, str):
            raw_counties = [raw_counties]
        if not isinstance(raw_counties, list):
            return None
        counties: List[str] = []
        for value in raw_counties:
            county = canonical_county(value) if isinstance(value, str) else None
            if county is None:
                LOGGER.debug("Dropping unknown county %r from model output", value)
                continue
            if county not in counties:
                counties.append(county)
        counties.sort(key=county_order)
        return category, is_state, counties


def build_classifier(generator: TextGenerator | None = None) -> Classifier:
    if generator is None:
        return HeuristicClassifier()
    return GenerativeClassifier(generator)
