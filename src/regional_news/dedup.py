"""
Duplicate detection: exact URL hash, near-identical titles and content
fingerprints. Each check raises before the caller pays for classification or
summarization.
"""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass
from typing import List, Protocol

from rapidfuzz.distance import Levenshtein

from src.regional_news.canonical import decode_entities, url_hash
from src.regional_news.errors import BlockedError, DuplicateError
from src.regional_news.stores import KeyValueStore, cache_get, cache_set

LOGGER = logging.getLogger(__name__)

TITLE_SIMILARITY_THRESHOLD = 0.88
RECENT_TITLE_WINDOW = 300
FINGERPRINT_WORDS = 150
FINGERPRINT_TTL = 3 * 24 * 3600
MAX_BRANDING_WORDS = 4

# "Headline - WKYT", "Headline | Lexington Herald-Leader"
BRANDING_SUFFIX_RE = re.compile(r"\s+[-–—|]\s+((?:(?!\s[-–—|]\s).)+)$")

STOP_WORDS = frozenset(
    {
        "about",
        "after",
        "again",
        "against",
        "amid",
        "also",
        "been",
        "before",
        "being",
        "from",
        "have",
        "here",
        "into",
        "just",
        "more",
        "news",
        "over",
        "said",
        "says",
        "some",
        "than",
        "that",
        "their",
        "them",
        "then",
        "there",
        "they",
        "this",
        "update",
        "updated",
        "what",
        "when",
        "where",
        "which",
        "while",
        "will",
        "with",
    }
)


class ArticleIndex(Protocol):
    def find_id_by_hash(self, hash_value: str) -> int | None:
        ...

    def is_blocked(self, hash_value: str) -> bool:
        ...

    def recent_titles(self, limit: int = RECENT_TITLE_WINDOW) -> List[tuple[int, str]]:
        ...


def strip_branding(title: str) -> str:
    """Drop a trailing outlet segment such as " - WKYT" from a headline."""
    match = BRANDING_SUFFIX_RE.search(title)
    if not match or len(match.group(1).split()) > MAX_BRANDING_WORDS:
        return title
    head = title[: match.start()].strip()
    return head if len(head.split()) >= 3 else title


def normalize_title(value: str | None) -> str:
    if not value:
        return ""
    cleaned = strip_branding(decode_entities(value).strip()).lower()
    cleaned = re.sub(r"['\u2019]s\b", "", cleaned)
    cleaned = re.sub(r"[^\w\s]|_", " ", cleaned)
    return re.sub(r"\s+", " ", cleaned).strip()


def first_meaningful_word(normalized: str) -> str | None:
    for word in normalized.split():
        if len(word) >= 4 and word.isalpha() and word not in STOP_WORDS:
            return word
    return None


def edit_distance(left: str, right: str) -> int:
    return Levenshtein.distance(left, right)


def title_similarity(left: str, right: str) -> float:
    """1 - edit distance / longer length, over normalized titles."""
    a = normalize_title(left)
    b = normalize_title(right)
    if not a or not b:
        return 0.0
    return Levenshtein.normalized_similarity(a, b)


def content_fingerprint(text: str | None, words: int = FINGERPRINT_WORDS) -> str | None:
    tokens = (text or "").lower().split()[:words]
    if not tokens:
        return None
    return hashlib.sha256(" ".join(tokens).encode("utf-8")).hexdigest()


@dataclass
class TitleMatch:
    article_id: int
    title: str
    similarity: float


class DedupEngine:
    def __init__(
        self,
        store: ArticleIndex,
        cache: KeyValueStore | None = None,
        similarity_threshold: float = TITLE_SIMILARITY_THRESHOLD,
        title_window: int = RECENT_TITLE_WINDOW,
        fingerprint_ttl: int = FINGERPRINT_TTL,
    ) -> None:
        self.store = store
        self.cache = cache
        self.similarity_threshold = similarity_threshold
        self.title_window = title_window
        self.fingerprint_ttl = fingerprint_ttl

    def check_url(self, canonical_url: str) -> str:
        """Return the URL hash, or raise BlockedError / DuplicateError."""
        hash_value = url_hash(canonical_url)
        if self.store.is_blocked(hash_value):
            raise BlockedError(hash_value)
        existing_id = self.store.find_id_by_hash(hash_value)
        if existing_id is not None:
            raise DuplicateError("url hash already exists", url_hash=hash_value, existing_id=existing_id)
        return hash_value

    def best_title_match(self, title: str) -> TitleMatch | None:
        candidate = normalize_title(title)
        if not candidate:
            return None
        candidate_key = first_meaningful_word(candidate)
        best: TitleMatch | None = None
        for article_id, existing_title in self.store.recent_titles(self.title_window):
            existing = normalize_title(existing_title)
            if not existing:
                continue
            if first_meaningful_word(existing) != candidate_key:
                continue
            shorter, longer = sorted((len(candidate), len(existing)))
            if shorter / longer < self.similarity_threshold:
                continue
            similarity = Levenshtein.normalized_similarity(candidate, existing)
            if best is None or similarity > best.similarity:
                best = TitleMatch(article_id, existing_title, similarity)
        if best:
            LOGGER.debug("Closest title for '%s' is '%s' (%.3f)", title, best.title, best.similarity)
        return best

    def check_title(self, title: str, hash_value: str | None = None) -> None:
        match = self.best_title_match(title)
        if match and match.similarity >= self.similarity_threshold:
            raise DuplicateError(
                f"similar title ({match.similarity:.2f}) to '{match.title}'",
                url_hash=hash_value,
                existing_id=match.article_id,
            )

    def check_fingerprint(self, text: str, hash_value: str | None = None) -> None:
        fingerprint = content_fingerprint(text)
        if not fingerprint:
            return
        existing = cache_get(self.cache, f"fingerprint:{fingerprint}")
        if existing is not None:
            raise DuplicateError(
                "content fingerprint matches a recent article",
                url_hash=hash_value,
                existing_id=int(existing) if existing.isdigit() else None,
            )

    def remember_fingerprint(self, text: str, article_id: int) -> None:
        fingerprint = content_fingerprint(text)
        if fingerprint:
            cache_set(self.cache, f"fingerprint:{fingerprint}", str(article_id), self.fingerprint_ttl)
