"""
Summaries with a deterministic extractive fallback and a validation gate for
model output. Anything the gate rejects is replaced by the fallback.
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict
from datetime import datetime, timedelta
from typing import Callable, Protocol, Set

from src.regional_news.canonical import content_hash, count_words, normalize_whitespace, utc_now
from src.regional_news.errors import ValidationError
from src.regional_news.llm import TextGenerator
from src.regional_news.models import SummaryResult
from src.regional_news.stores import KeyValueStore, cache_get, cache_get_json, cache_set, cache_set_json

LOGGER = logging.getLogger(__name__)

FALLBACK_RATIO = 0.45
FALLBACK_MIN_WORDS = 30
FALLBACK_MAX_WORDS = 250
EMPTY_SOURCE_SUMMARY = "No details are available for this story yet."
LENGTH_BAND_LOW = 0.35
LENGTH_BAND_HIGH = 0.50
SHORT_SOURCE_WORDS = 400
SHORT_SOURCE_MAX_SUMMARY_WORDS = 200
ABSOLUTE_FLOOR_WORDS = 30
SHORT_DESCRIPTION_MAX = 160
MAX_MODEL_INPUT_CHARS = 12000

RECENT_ARTICLE_AGE = timedelta(hours=48)
FRESHNESS_TTL_RECENT = 3600
FRESHNESS_TTL_DEFAULT = 24 * 3600

CLOSERS = "\"'”’)]"
_TERMINAL_RE = re.compile(r"[.!?]$")
_QUOTED_END_RE = re.compile(rf"([.!?])([{re.escape(CLOSERS)}]+)$")
_SENTENCE_END_RE = re.compile(rf"[.!?][{re.escape(CLOSERS)}]*(?=\s|$)")
_WORD_RE = re.compile(r"\S+")
_NUMBER_RE = re.compile(
    r"\d[\d,]*(?:\.\d+)?(?:\s*(?:%|percent\b)|\s+(?:million|billion|thousand)\b)?",
    re.IGNORECASE,
)
_YEAR_RE = re.compile(r"(?:19|20)\d{2}")
_PREAMBLE_RE = re.compile(
    r"^\s*(?:here(?:'s| is)(?: a| the)?(?: concise| brief| short)? summary[^:\n]*:|summary:)\s*",
    re.IGNORECASE,
)
_BOILERPLATE_LINE_RE = re.compile(
    r"^\s*(?:read more|click here|subscribe|sign up|copyright|all rights reserved|related:)",
    re.IGNORECASE,
)

SUMMARY_SYSTEM_PROMPT = (
    "You summarize local news articles for readers. Rules:\n"
    "- Write 35-50% of the article's length; for articles under 400 words stay under 200 words.\n"
    "- Use only facts stated in the article. Never add numbers, names or dates that are not in it.\n"
    "- Short paragraphs of one to three sentences.\n"
    "- Quote at most one sentence from the article.\n"
    "- No headline, preamble, bullet points, markdown or boilerplate such as 'read more'.\n"
    "- Always end on a complete sentence."
)


def _clean_paragraphs(text: str) -> str:
    paragraphs = [normalize_whitespace(chunk) for chunk in re.split(r"\n\s*\n", text)]
    return "\n\n".join(paragraph for paragraph in paragraphs if paragraph)


def ensure_terminal_punctuation(text: str) -> str:
    """Trim back to the last complete sentence, or add a period to a lone fragment.

    The result always ends in ``.``, ``!`` or ``?``; a period inside a closing quote
    or bracket moves outside it.
    """
    cleaned = text.strip()
    if not cleaned:
        return cleaned
    if not _TERMINAL_RE.search(cleaned) and not _QUOTED_END_RE.search(cleaned):
        last_end = None
        for match in _SENTENCE_END_RE.finditer(cleaned):
            last_end = match.end()
        if last_end:
            cleaned = cleaned[:last_end].strip()
        else:
            cleaned = cleaned.rstrip(",;:-–— ") + "."
    return _QUOTED_END_RE.sub(r"\2\1", cleaned)


def truncate_words(text: str, max_words: int) -> str:
    """Cut ``text`` after ``max_words`` words, keeping its paragraph breaks."""
    matches = list(_WORD_RE.finditer(text))
    if len(matches) <= max_words:
        return text
    return text[: matches[max_words - 1].end()]


def build_fallback_summary(text: str) -> str:
    """Leading ~45% of the body, clamped to a sane range, ending on a full sentence."""
    total = count_words(text)
    if not total:
        return EMPTY_SOURCE_SUMMARY
    target = max(FALLBACK_MIN_WORDS, min(FALLBACK_MAX_WORDS, round(total * FALLBACK_RATIO)))
    excerpt = _clean_paragraphs(truncate_words(text, target))
    return ensure_terminal_punctuation(excerpt)


def normalize_model_output(raw: str | None) -> str:
    if not raw:
        return ""
    text = raw.strip()
    text = re.sub(r"^```[a-zA-Z]*\s*|\s*```$", "", text)
    text = _PREAMBLE_RE.sub("", text)
    text = text.replace("**", "").replace("__", "").replace("`", "")
    lines = [line for line in text.splitlines() if not _BOILERPLATE_LINE_RE.match(line)]
    lines = [re.sub(r"^\s*(?:#+|[-*•])\s+", "", line) for line in lines]
    return _clean_paragraphs("\n".join(lines))


def _normalize_number(token: str) -> str:
    value = token.lower().replace(",", "")
    value = re.sub(r"\s*(?:%|percent)$", "%", value)
    return " ".join(value.split())


def _number_tokens(text: str) -> Set[str]:
    tokens: Set[str] = set()
    for match in _NUMBER_RE.finditer(text):
        normalized = _normalize_number(match.group(0))
        tokens.add(normalized)
        tokens.add(normalized.split()[0].rstrip("%"))
    return tokens


def check_numeric_fidelity(summary: str, source: str) -> None:
    """Every number in ``summary`` must appear in ``source``; bare years may appear in any form."""
    source_numbers = _number_tokens(source)
    for match in _NUMBER_RE.finditer(summary):
        normalized = _normalize_number(match.group(0))
        if normalized in source_numbers:
            continue
        if _YEAR_RE.fullmatch(normalized) and re.search(rf"(?<!\d){normalized}(?!\d)", source):
            continue
        raise ValidationError(f"number '{match.group(0).strip()}' does not appear in the source")


def enforce_length_band(summary: str, source_words: int) -> str:
    words = count_words(summary)
    low = source_words * LENGTH_BAND_LOW
    if source_words < SHORT_SOURCE_WORDS:
        high = min(SHORT_SOURCE_MAX_SUMMARY_WORDS, source_words)
    else:
        high = int(source_words * LENGTH_BAND_HIGH)
    if words < low and words < ABSOLUTE_FLOOR_WORDS:
        raise ValidationError(f"summary too short ({words} words for a {source_words}-word source)")
    if words <= high:
        return summary
    truncated = truncate_words(summary, max(int(high), 1)).strip()
    if _TERMINAL_RE.search(truncated) or _QUOTED_END_RE.search(truncated):
        return truncated
    last_end = None
    for match in _SENTENCE_END_RE.finditer(truncated):
        last_end = match.end()
    if not last_end:
        raise ValidationError(f"summary too long ({words} words) with no sentence boundary to cut at")
    return truncated[:last_end].strip()


def validate_generated_summary(summary: str, source: str) -> str:
    """Run the gates in order and return the (possibly truncated) summary."""
    if not summary.strip():
        raise ValidationError("empty summary")
    check_numeric_fidelity(summary, source)
    bounded = enforce_length_band(summary, count_words(source))
    return ensure_terminal_punctuation(bounded)


def first_sentence(text: str) -> str:
    match = _SENTENCE_END_RE.search(text)
    return text[: match.end()] if match else text


def build_short_description(summary: str, limit: int = SHORT_DESCRIPTION_MAX) -> str:
    sentence = normalize_whitespace(first_sentence(summary))
    if len(sentence) <= limit:
        return sentence
    cut = sentence[: limit - 3]
    if " " in cut:
        cut = cut[: cut.rfind(" ")]
    return cut.rstrip(" ,;:-") + "..."


def freshness_ttl(published_at: datetime | None, now: datetime) -> int:
    if published_at is not None and now - published_at <= RECENT_ARTICLE_AGE:
        return FRESHNESS_TTL_RECENT
    return FRESHNESS_TTL_DEFAULT


class Summarizer(Protocol):
    def summarize(self, title: str, text: str, published_at: datetime | None = None) -> SummaryResult:
        ...


class ExtractiveSummarizer:
    """Fallback-only summaries, cached by source content hash."""

    def __init__(self, cache: KeyValueStore | None = None, clock: Callable[[], datetime] = utc_now) -> None:
        self.cache = cache
        self.clock = clock

    def summarize(self, title: str, text: str, published_at: datetime | None = None) -> SummaryResult:
        source = text if text and text.strip() else title
        source_hash = content_hash(source)
        ttl = freshness_ttl(published_at, self.clock())
        cached = self._load_cached(source_hash, source, ttl)
        if cached is not None:
            return cached
        summary, generated = self._produce(title, source)
        result = SummaryResult(
            summary=summary,
            short_description=build_short_description(summary),
            word_count=count_words(summary),
            source_content_hash=source_hash,
            generated=generated,
        )
        # The summary itself lives until the content changes; only the marker expires.
        cache_set_json(self.cache, f"summary:{source_hash}", asdict(result))
        cache_set(self.cache, f"summary-fresh:{source_hash}", "1", ttl)
        return result

    def _load_cached(self, source_hash: str, source: str, ttl: int) -> SummaryResult | None:
        payload = cache_get_json(self.cache, f"summary:{source_hash}")
        if not isinstance(payload, dict):
            return None
        try:
            result = SummaryResult(**payload)
        except TypeError:
            LOGGER.debug("Ignoring malformed cached summary %s", source_hash)
            return None
        if cache_get(self.cache, f"summary-fresh:{source_hash}") is not None:
            return result
        if result.generated:
            try:
                revalidated = validate_generated_summary(result.summary, source)
            except ValidationError as exc:
                LOGGER.info("Cached summary %s failed re-validation: %s", source_hash, exc)
                return None
            if revalidated != result.summary:
                return None
        cache_set(self.cache, f"summary-fresh:{source_hash}", "1", ttl)
        return result

    def _produce(self, title: str, source: str) -> tuple[str, bool]:
        return build_fallback_summary(source), False


class GenerativeSummarizer(ExtractiveSummarizer):
    def __init__(
        self,
        generator: TextGenerator,
        cache: KeyValueStore | None = None,
        clock: Callable[[], datetime] = utc_now,
        max_new_tokens: int = 400,
    ) -> None:
        super().__init__(cache, clock)
        self.generator = generator
        self.max_new_tokens = max_new_tokens

    @staticmethod
    def build_prompt(title: str, source: str) -> str:
        return f"Title: {title}\n\nArticle:\n{source[:MAX_MODEL_INPUT_CHARS]}\n\nSummary:"

    def _produce(self, title: str, source: str) -> tuple[str, bool]:
        fallback = build_fallback_summary(source)
        try:
            raw = self.generator.generate(
                SUMMARY_SYSTEM_PROMPT,
                self.build_prompt(title, source),
                max_new_tokens=self.max_new_tokens,
            )
        except Exception:  # noqa: BLE001
            LOGGER.warning("Summary generation failed for '%s'; using fallback", title, exc_info=True)
            return fallback, False
        candidate = normalize_model_output(raw)
        try:
            return validate_generated_summary(candidate, source), True
        except ValidationError as exc:
            LOGGER.warning("Generated summary for '%s' rejected: %s", title, exc)
            return fallback, False


def build_summarizer(generator: TextGenerator | None = None, cache: KeyValueStore | None = None) -> Summarizer:
    if generator is None:
        return ExtractiveSummarizer(cache)
    return GenerativeSummarizer(generator, cache)
