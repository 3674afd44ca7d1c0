from typing import Dict, List

import pytest

from src.regional_news.canonical import url_hash
from src.regional_news.dedup import (
    DedupEngine,
    content_fingerprint,
    edit_distance,
    first_meaningful_word,
    normalize_title,
    strip_branding,
    title_similarity,
)
from src.regional_news.errors import BlockedError, DuplicateError
from src.regional_news.stores import MemoryKeyValueStore

BASE_TITLE = "Lexington council approves new downtown parking garage plan"


class FakeIndex:
    def __init__(self, titles: List[tuple[int, str]] | None = None) -> None:
        self.titles = titles or []
        self.hashes: Dict[str, int] = {}
        self.blocked: set[str] = set()

    def find_id_by_hash(self, hash_value: str) -> int | None:
        return self.hashes.get(hash_value)

    def is_blocked(self, hash_value: str) -> bool:
        return hash_value in self.blocked

    def recent_titles(self, limit: int = 300) -> List[tuple[int, str]]:
        return self.titles[:limit]


def test_edit_distance_basics() -> None:
    assert edit_distance("kitten", "sitting") == 3
    assert edit_distance("", "abc") == 3
    assert edit_distance("same", "same") == 0


def test_title_similarity_ignores_branding_suffix() -> None:
    assert title_similarity(BASE_TITLE, f"{BASE_TITLE} - WKYT") >= 0.88
    assert title_similarity(BASE_TITLE, "Lexington police investigate overnight shooting on Main Street") < 0.88
    assert title_similarity("", BASE_TITLE) == 0.0


def test_short_headlines_with_outlet_branding_still_match() -> None:
    headline = "Crash closes I-75 in Laurel County"
    assert title_similarity(headline, f"{headline} - WKYT") >= 0.88
    assert title_similarity(headline, f"{headline} | Lexington Herald-Leader") >= 0.88
    assert strip_branding(f"{headline} - WKYT") == headline
    assert strip_branding("Ky. - Tenn. game") == "Ky. - Tenn. game"

    index = FakeIndex([(4, f"{headline} | WYMT")])
    with pytest.raises(DuplicateError) as excinfo:
        DedupEngine(index).check_title(headline)
    assert excinfo.value.existing_id == 4


def test_normalize_title_and_first_word() -> None:
    normalized = normalize_title("Governor&#39;s race &amp;amp; what&#8217;s next?")
    assert normalized == "governor race what next"
    assert first_meaningful_word("what about the budget vote") == "budget"


def test_check_url_reports_duplicates_and_blocks() -> None:
    index = FakeIndex()
    engine = DedupEngine(index)
    url = "https://example.com/news/story"
    hash_value = engine.check_url(url)
    assert hash_value == url_hash(url)

    index.hashes[hash_value] = 7
    with pytest.raises(DuplicateError) as excinfo:
        engine.check_url(url)
    assert excinfo.value.existing_id == 7

    index.blocked.add(hash_value)
    with pytest.raises(BlockedError):
        engine.check_url(url)


def test_check_title_flags_near_identical_titles() -> None:
    engine = DedupEngine(FakeIndex([(3, f"{BASE_TITLE} - WKYT"), (2, "School board approves calendar")]))

    with pytest.raises(DuplicateError) as excinfo:
        engine.check_title(BASE_TITLE, "abc")

    assert excinfo.value.existing_id == 3
    assert excinfo.value.reason.startswith("similar title (0.9")
    engine.check_title("Lexington police investigate overnight shooting on Main Street")


def test_threshold_is_configurable() -> None:
    index = FakeIndex([(1, f"{BASE_TITLE} - WKYT")])
    DedupEngine(index, similarity_threshold=0.99).check_title(BASE_TITLE)


def test_fingerprint_detects_reposted_body() -> None:
    body = " ".join(f"word{i}" for i in range(200))
    cache = MemoryKeyValueStore()
    engine = DedupEngine(FakeIndex(), cache)

    engine.check_fingerprint(body)
    engine.remember_fingerprint(body, 11)

    with pytest.raises(DuplicateError) as excinfo:
        engine.check_fingerprint(body.upper() + " trailing words beyond the window")
    assert excinfo.value.existing_id == 11
    assert content_fingerprint("") is None


def test_fingerprint_without_cache_is_a_no_op() -> None:
    engine = DedupEngine(FakeIndex())
    engine.remember_fingerprint("some body text", 1)
    engine.check_fingerprint("some body text")
