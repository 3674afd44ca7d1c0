"""
County and city relevance detection for the target state.

Matching runs on a length-preserving normalized copy of the text (lowercase
ASCII alphanumerics, everything else a space) so offsets line up with the raw
text, which is still consulted for case-sensitive signals such as postal codes
and capitalized surnames.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Pattern, Sequence

from src.regional_news.gazetteer import (
    HIGH_AMBIGUITY_CITIES,
    KY_CITY_COUNTY,
    KY_COUNTIES,
    OTHER_STATE_CODES,
    OTHER_STATE_NAMES,
    TARGET_STATE_CODE,
    TARGET_STATE_NAME,
)

LOGGER = logging.getLogger(__name__)

DISQUALIFICATION_WINDOW = 150
CITY_CUE_WINDOW_WORDS = 5
COUNTY_SUFFIXES = frozenset({"county", "counties", "cnty", "co"})
ENUMERATION_CONNECTORS = frozenset({"and", "or"})
LOCATIVE_CUES = frozenset({"in", "at", "from", "near", "county"})

# Capitalized words that commonly follow a place name without making it a person.
NON_SURNAME_FOLLOWERS = frozenset(
    {
        "Airport", "Area", "Avenue", "City", "College", "Commission", "Community",
        "Council", "County", "Elementary", "Fire", "High", "Hospital", "Independent",
        "Mall", "Mayor", "Memorial", "Metro", "Middle", "Police", "Public", "Regional",
        "Road", "Schools", "Street", "Tech", "University",
        "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday",
        "January", "February", "March", "April", "May", "June", "July", "August",
        "September", "October", "November", "December",
    }
)
_SURNAME_RE = re.compile(r"[ \t]+([A-Z][a-z]{2,})\b")
_TOKEN_RE = re.compile(r"[a-z0-9]+")
# "Tulsa, OK" or "Columbus OH"; a sentence-initial "OK," is a word.
_POSTAL_LEAD_RE = re.compile(r"(?:,\s*|[A-Z][a-z]+\.?\s+)$")
_DATELINE_RE = re.compile(
    r"^\s*(?P<place>[A-Z][A-Z.' -]{2,}?)(?:,\s*(?P<state>[A-Z][A-Za-z.]{1,14}))?\s*(?:\([A-Za-z ]+\))?\s*[—–-]{1,2}\s"
)
DATELINE_NON_PLACES = frozenset({"breaking", "update", "updated", "watch", "live", "photos", "video"})


def normalize_for_search(text: str | None) -> str:
    """Lowercase ASCII alphanumerics; every other character becomes a space."""
    if not text:
        return ""
    return "".join(ch.lower() if ch.isascii() and ch.isalnum() else " " for ch in text)


def _phrase_pattern(phrase: str) -> str:
    return r"\s+".join(re.escape(word) for word in phrase.lower().split())


@dataclass
class CityHit:
    name: str
    county: str
    position: int


@dataclass
class GeoDetection:
    is_state: bool
    counties: List[str] = field(default_factory=list)
    city: str | None = None
    out_of_state_dateline: bool = False

    @property
    def county(self) -> str | None:
        return self.counties[0] if self.counties else None


class GeoDetector:
    def __init__(
        self,
        counties: Sequence[str] = KY_COUNTIES,
        city_counties: Dict[str, str] = KY_CITY_COUNTY,
        high_ambiguity_cities: Iterable[str] = HIGH_AMBIGUITY_CITIES,
        state_name: str = TARGET_STATE_NAME,
        state_code: str = TARGET_STATE_CODE,
        other_state_names: Sequence[str] = OTHER_STATE_NAMES,
        other_state_codes: Sequence[str] = OTHER_STATE_CODES,
        window: int = DISQUALIFICATION_WINDOW,
    ) -> None:
        self.counties = list(counties)
        self._county_rank = {name.lower(): idx for idx, name in enumerate(self.counties)}
        self._county_names = {name.lower(): name for name in self.counties}
        self.city_counties = {name.lower(): county for name, county in city_counties.items()}
        self.high_ambiguity_cities = frozenset(name.lower() for name in high_ambiguity_cities)
        self.window = window
        self.state_name = state_name.lower()
        self.state_code = state_code.lower()

        self._state_context_re = re.compile(
            rf"\b{_phrase_pattern(state_name)}\b|\b{re.escape(self.state_code)}\b"
        )
        self._fallback_re = re.compile(
            rf"\bcommonwealth\s+of\s+{_phrase_pattern(state_name)}\b"
            rf"|\b{_phrase_pattern(state_name)}\b|\b{re.escape(self.state_code)}\b"
        )
        suffixes = "|".join(sorted(COUNTY_SUFFIXES))
        names = "|".join(_phrase_pattern(name) for name in sorted(other_state_names, key=len, reverse=True))
        # "Ohio County" or "Washington County" is a county, not a conflicting state.
        self._other_state_name_re = re.compile(rf"\b(?:{names})\b(?!\s+(?:{suffixes})\b)")
        codes = "|".join(re.escape(code) for code in other_state_codes)
        self._other_state_code_re = re.compile(rf"(?<![A-Za-z])(?:{codes})(?![A-Za-z])")
        # Longer and multi-word names first so "bowling green" claims its span before "green".
        ordered_cities = sorted(self.city_counties, key=lambda name: (-len(name.split()), -len(name)))
        self._city_patterns: List[tuple[str, Pattern[str]]] = [
            (name, re.compile(rf"\b{_phrase_pattern(name)}\b")) for name in ordered_cities
        ]
        self._multiword_city_tails: Dict[str, set[str]] = {}
        for name in self.city_counties:
            words = name.split()
            if len(words) > 1:
                self._multiword_city_tails.setdefault(words[-1], set()).add(" ".join(words[:-1]))

    def has_state_context(self, normalized: str) -> bool:
        return bool(self._state_context_re.search(normalized))

    def _is_shouting(self, raw: str, start: int, end: int) -> bool:
        """True when a two-letter code sits inside an all-caps run (headline text)."""
        before = re.findall(r"[A-Za-z]{2,}", raw[max(0, start - 30) : start])
        after = re.findall(r"[A-Za-z]{2,}", raw[end : end + 30])
        neighbours = before[-1:] + after[:1]
        return any(word.isupper() for word in neighbours)

    def disqualifying_signal(self, raw: str, normalized: str, start: int, end: int) -> str | None:
        """Return the conflicting state signal near ``[start, end)`` if any."""
        low = max(0, start - self.window)
        high = min(len(normalized), end + self.window)
        for seg_start, seg_end in ((low, start), (end, high)):
            if seg_start >= seg_end:
                continue
            name_match = self._other_state_name_re.search(normalized, seg_start, seg_end)
            if name_match:
                return name_match.group(0).strip()
            for code_match in self._other_state_code_re.finditer(raw, seg_start, seg_end):
                start_at, end_at = code_match.start(), code_match.end()
                if not _POSTAL_LEAD_RE.search(raw[max(0, start_at - 40) : start_at]):
                    continue
                if not self._is_shouting(raw, start_at, end_at):
                    return code_match.group(0)
        return None

    def _county_mentions(self, raw: str, normalized: str) -> List[tuple[str, int, int]]:
        tokens = [(match.group(0), match.start(), match.end()) for match in _TOKEN_RE.finditer(normalized)]
        mentions: List[tuple[str, int, int]] = []
        for idx, (token, _, suffix_end) in enumerate(tokens):
            if token not in COUNTY_SUFFIXES or idx == 0:
                continue
            head = idx - 1
            if tokens[head][0] not in self._county_names:
                continue
            mentions.append((self._county_names[tokens[head][0]], tokens[head][1], suffix_end))
            if tokens[idx][0] == "co":
                continue
            # Walk back over enumerations: "Harlan, Letcher and Perry counties".
            cursor = head
            while cursor > 0:
                prev = cursor - 1
                candidate = None
                if tokens[prev][0] in ENUMERATION_CONNECTORS and prev > 0:
                    if tokens[prev - 1][0] in self._county_names:
                        candidate = prev - 1
                elif tokens[prev][0] in self._county_names:
                    gap = raw[tokens[prev][2] : tokens[cursor][1]]
                    if "," in gap or "&" in gap:
                        candidate = prev
                if candidate is None:
                    break
                name = tokens[candidate][0]
                if candidate > 0 and tokens[candidate - 1][0] in self._multiword_city_tails.get(name, ()):
                    break
                mentions.append((self._county_names[name], tokens[candidate][1], tokens[candidate][2]))
                cursor = candidate
        return mentions

    def detect_counties(self, text: str) -> List[str]:
        """Counties mentioned with a county suffix, in gazetteer order."""
        normalized = normalize_for_search(text)
        has_context = self.has_state_context(normalized)
        found: set[str] = set()
        for county, start, end in self._county_mentions(text, normalized):
            if county in found:
                continue
            if not has_context:
                signal = self.disqualifying_signal(text, normalized, start, end)
                if signal:
                    LOGGER.debug("County %s disqualified by nearby '%s'", county, signal)
                    continue
            found.add(county)
        return sorted(found, key=lambda name: self._county_rank[name.lower()])

    def _has_locative_cue(self, normalized: str, start: int, end: int) -> bool:
        before = normalized[max(0, start - 80) : start].split()[-CITY_CUE_WINDOW_WORDS:]
        after = normalized[end : end + 80].split()[:CITY_CUE_WINDOW_WORDS]
        cues = LOCATIVE_CUES | {self.state_code, self.state_name}
        if any(word in cues for word in before + after):
            return True
        if " ".join(before[-2:]) == "city of":
            return True
        state_words = self.state_name.split()
        return len(state_words) > 1 and " ".join(after[: len(state_words)]) == self.state_name

    @staticmethod
    def _followed_by_surname(raw: str, end: int) -> bool:
        match = _SURNAME_RE.match(raw, end)
        return bool(match) and match.group(1) not in NON_SURNAME_FOLLOWERS

    def detect_cities(self, text: str) -> List[CityHit]:
        """Accepted city mentions in text order."""
        normalized = normalize_for_search(text)
        has_context = self.has_state_context(normalized)
        claimed: List[tuple[int, int]] = []
        hits: List[CityHit] = []
        for city, pattern in self._city_patterns:
            spans = [
                (match.start(), match.end())
                for match in pattern.finditer(normalized)
                if not any(match.start() < c_end and c_start < match.end() for c_start, c_end in claimed)
            ]
            if not spans:
                continue
            claimed.extend(spans)
            if self._accept_city(city, spans, text, normalized, has_context):
                hits.append(CityHit(city, self.city_counties[city], spans[0][0]))
        hits.sort(key=lambda hit: hit.position)
        return hits

    def _accept_city(
        self,
        city: str,
        spans: List[tuple[int, int]],
        raw: str,
        normalized: str,
        has_context: bool,
    ) -> bool:
        cued = [span for span in spans if self._has_locative_cue(normalized, *span)]
        if city in self.high_ambiguity_cities and not cued:
            return False
        if not cued and not has_context and len(spans) < 2:
            return False
        if len(spans) == 1 and " " not in city and self._followed_by_surname(raw, spans[0][1]):
            LOGGER.debug("City %s looks like part of a person's name", city)
            return False
        if has_context:
            return True
        return any(
            self.disqualifying_signal(raw, normalized, start, end) is None for start, end in (cued or spans)
        )

    def out_of_state_dateline(self, text: str) -> bool:
        """True for wire copy opening with a dateline outside the target state."""
        match = _DATELINE_RE.match(text or "")
        if not match:
            return False
        place = " ".join(match.group("place").lower().replace(".", " ").split())
        if place in DATELINE_NON_PLACES:
            return False
        state = (match.group("state") or "").lower().rstrip(".")
        if state:
            return not (self.state_name.startswith(state) or state == self.state_code)
        return place not in self.city_counties and place != self.state_name

    def detect(self, text: str, lead: str | None = None) -> GeoDetection:
        """Geo relevance for ``text``; ``lead`` is the body opening checked for wire datelines."""
        counties = self.detect_counties(text)
        cities = self.detect_cities(text)
        city = cities[0] if cities else None
        if counties:
            return GeoDetection(True, counties, city.name if city else None)
        if city:
            return GeoDetection(True, [city.county], city.name)
        dateline = self.out_of_state_dateline(text if lead is None else lead)
        if self._fallback_re.search(normalize_for_search(text)) and not dateline:
            return GeoDetection(True)
        return GeoDetection(False, out_of_state_dateline=dateline)


DEFAULT_DETECTOR = GeoDetector()


def detect_counties(text: str) -> List[str]:
    return DEFAULT_DETECTOR.detect_counties(text)


def detect_city(text: str) -> str | None:
    hits = DEFAULT_DETECTOR.detect_cities(text)
    return hits[0].name if hits else None


def detect_geo(text: str, lead: str | None = None) -> GeoDetection:
    return DEFAULT_DETECTOR.detect(text, lead)
