from datetime import datetime, timezone

from src.regional_news.canonical import (
    build_article_slug,
    canonicalize_url,
    count_words,
    decode_entities,
    parse_datetime,
    slugify,
    title_from_url,
    url_hash,
)


def test_canonicalize_strips_tracking_fragment_and_trailing_slash() -> None:
    assert canonicalize_url("http://Example.com/a/?utm_source=x#f") == "https://example.com/a"
    assert (
        canonicalize_url("https://www.Example.com/news/story/?utm_source=rss&fbclid=abc#section")
        == "https://example.com/news/story"
    )


def test_canonicalize_is_idempotent() -> None:
    urls = [
        "https://example.com/a",
        "https://example.com/news/story?id=42&page=2",
        "https://example.com",
        "https://example.com:8443/path/with%20space",
    ]
    for url in urls:
        once = canonicalize_url(url)
        assert once is not None
        assert canonicalize_url(once) == once


def test_canonicalize_keeps_meaningful_query_params() -> None:
    assert canonicalize_url("https://example.com/story?id=5&utm_medium=email&gclid=1") == (
        "https://example.com/story?id=5"
    )


def test_canonicalize_rejects_non_web_urls() -> None:
    assert canonicalize_url("javascript:alert(1)") is None
    assert canonicalize_url("mailto:editor@example.com") is None
    assert canonicalize_url("") is None
    assert canonicalize_url(None) is None


def test_equivalent_urls_share_a_hash() -> None:
    first = canonicalize_url("http://www.example.com/a/?utm_campaign=z")
    second = canonicalize_url("https://example.com/a")
    assert first == second
    assert url_hash(first) == url_hash(second)
    assert len(url_hash(first)) == 64


def test_slug_combines_title_and_hash_prefix() -> None:
    hash_value = url_hash("https://example.com/a")
    slug = build_article_slug("Governor's Budget: What's Next?", hash_value)
    assert slug == f"governors-budget-whats-next-{hash_value[:8]}"
    assert len(slugify("word " * 40)) <= 60


def test_title_from_url_uses_last_segment() -> None:
    assert title_from_url("https://example.com/news/city-council-votes-on-budget-123456.html") == (
        "City Council Votes On Budget"
    )
    assert title_from_url("https://example.com/") == "example.com"


def test_parse_datetime_accepts_rfc822_and_iso() -> None:
    expected = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
    assert parse_datetime("Wed, 01 May 2024 12:30:00 GMT") == expected
    assert parse_datetime("2024-05-01T08:30:00-04:00") == expected
    assert parse_datetime("not a date") is None


def test_text_helpers() -> None:
    assert decode_entities("Fish &amp;amp; Chips") == "Fish & Chips"
    assert count_words("  one two\nthree ") == 3
