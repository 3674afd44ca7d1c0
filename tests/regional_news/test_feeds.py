from datetime import datetime, timezone

from src.regional_news.feeds import (
    FeedResolver,
    build_feed_candidates,
    dedupe_and_sort,
    parse_sitemap,
    parse_syndication,
)
from src.regional_news.models import FeedItem

RSS_BODY = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Example News</title>
    <link>https://example.com/</link>
    <item>
      <title>County fiscal court approves road plan</title>
      <link>https://example.com/news/road-plan</link>
      <pubDate>Wed, 01 May 2024 12:30:00 GMT</pubDate>
      <description><![CDATA[<p>Magistrates voted <b>4-1</b> on Tuesday.</p>]]></description>
    </item>
    <item>
      <title>Library extends summer hours</title>
      <link>https://example.com/news/library-hours</link>
      <pubDate>Thu, 02 May 2024 09:00:00 GMT</pubDate>
    </item>
  </channel>
</rss>
"""

ATOM_BODY = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Example Atom</title>
  <entry>
    <title>Bridge reopens after repairs</title>
    <link href="https://example.org/2024/05/bridge-reopens"/>
    <id>tag:example.org,2024:bridge</id>
    <updated>2024-05-02T10:00:00Z</updated>
    <summary>Crews finished work ahead of schedule.</summary>
  </entry>
</feed>
"""

SITEMAP_INDEX = """<?xml version="1.0" encoding="UTF-8"?>
<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <sitemap><loc>https://example.com/sitemap-news.xml</loc></sitemap>
  <sitemap><loc>https://example.com/sitemap-missing.xml</loc></sitemap>
  <sitemap><loc>https://example.com/sitemap.xml</loc></sitemap>
</sitemapindex>
"""

SITEMAP_URLSET = """<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <url>
    <loc>https://example.com/news/older-story-about-taxes</loc>
    <lastmod>2024-04-01T08:00:00Z</lastmod>
  </url>
  <url>
    <loc>https://example.com/news/newer-story-about-roads</loc>
    <lastmod>2024-05-01T08:00:00Z</lastmod>
  </url>
  <url>
    <loc>https://www.example.com/news/newer-story-about-roads/</loc>
  </url>
</urlset>
"""

HOMEPAGE = """<!DOCTYPE html>
<html><head>
<title>Example</title>
<link rel="alternate" type="application/rss+xml" href="/custom/headlines.xml">
</head><body><p>Welcome</p></body></html>
"""


def test_parse_rss_items() -> None:
    items = parse_syndication(RSS_BODY)
    assert [item.link for item in items] == [
        "https://example.com/news/road-plan",
        "https://example.com/news/library-hours",
    ]
    first = items[0]
    assert first.title == "County fiscal court approves road plan"
    assert first.published_at == datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
    assert first.description == "Magistrates voted 4-1 on Tuesday."
    assert items[1].description is None


def test_parse_atom_entries() -> None:
    items = parse_syndication(ATOM_BODY)
    assert len(items) == 1
    assert items[0].link == "https://example.org/2024/05/bridge-reopens"
    assert items[0].published_at == datetime(2024, 5, 2, 10, 0, tzinfo=timezone.utc)


def test_parse_sitemap_variants() -> None:
    kind, children = parse_sitemap(SITEMAP_INDEX)
    assert kind == "index"
    assert children[0] == "https://example.com/sitemap-news.xml"

    kind, items = parse_sitemap(SITEMAP_URLSET)
    assert kind == "urlset"
    assert items[0].title == "Older Story About Taxes"

    assert parse_sitemap("plain text") == (None, [])


def test_candidates_include_suffixes_and_alternate_links() -> None:
    candidates = build_feed_candidates("https://example.com/", HOMEPAGE)
    assert candidates[0] == "https://example.com/"
    assert "https://example.com/feed" in candidates
    assert "https://example.com/rss.xml" in candidates
    assert candidates[-1] == "https://example.com/custom/headlines.xml"
    assert len(candidates) == len(set(candidates))


def test_resolve_stops_at_first_candidate_with_items(fetcher) -> None:
    fetcher.add("https://example.com", HOMEPAGE)
    fetcher.add("https://example.com/rss", RSS_BODY, content_type="application/rss+xml")
    fetcher.add("https://example.com/rss.xml", ATOM_BODY, content_type="application/atom+xml")

    feed_url, items = FeedResolver(fetcher).resolve("https://example.com")

    assert feed_url == "https://example.com/rss"
    assert len(items) == 2
    assert "https://example.com/rss.xml" not in fetcher.calls


def test_resolve_uses_advertised_alternate_link(fetcher) -> None:
    fetcher.add("https://example.com", HOMEPAGE)
    fetcher.add("https://example.com/custom/headlines.xml", ATOM_BODY, content_type="application/atom+xml")

    feed_url, items = FeedResolver(fetcher).resolve("https://example.com")

    assert feed_url == "https://example.com/custom/headlines.xml"
    assert items[0].title == "Bridge reopens after repairs"


def test_resolve_returns_nothing_when_no_candidate_works(fetcher) -> None:
    fetcher.add("https://example.com", HOMEPAGE)
    assert FeedResolver(fetcher).resolve("https://example.com") == (None, [])


def test_sitemap_index_is_followed_without_looping(fetcher) -> None:
    fetcher.add("https://example.com/sitemap.xml", SITEMAP_INDEX, content_type="application/xml")
    fetcher.add("https://example.com/sitemap-news.xml", SITEMAP_URLSET, content_type="application/xml")

    items = FeedResolver(fetcher).read_feed("https://example.com/sitemap.xml")

    assert [item.link for item in items] == [
        "https://example.com/news/newer-story-about-roads",
        "https://example.com/news/older-story-about-taxes",
    ]
    assert fetcher.calls.count("https://example.com/sitemap.xml") == 1


def test_dedupe_and_sort_orders_newest_first() -> None:
    older = FeedItem(title="a", link="https://example.com/a", published_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
    newer = FeedItem(title="b", link="https://example.com/b", published_at=datetime(2024, 2, 1, tzinfo=timezone.utc))
    undated = FeedItem(title="c", link="https://example.com/c")
    repeat = FeedItem(title="a again", link="http://www.example.com/a/?utm_source=rss")

    result = dedupe_and_sort([older, undated, newer, repeat])

    assert [item.title for item in result] == ["b", "a", "c"]
