"""
Feed resolution: turn a source root URL into feed items via RSS/Atom feeds or
sitemaps.
"""

from __future__ import annotations

import calendar
import logging
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, List, Sequence
from urllib.parse import urljoin

import feedparser
from bs4 import BeautifulSoup

from src.regional_news.canonical import (
    canonicalize_url,
    decode_entities,
    normalize_whitespace,
    parse_datetime,
    title_from_url,
)
from src.regional_news.errors import NetworkError, ParseError
from src.regional_news.fetching import FEED_CACHE_TTL, FetchResult, Fetcher
from src.regional_news.models import FeedItem

LOGGER = logging.getLogger(__name__)

FEED_SUFFIXES = ("/feed", "/rss", "/rss.xml", "/feed.xml", "/index.xml")
FEED_LINK_TYPES = ("application/rss+xml", "application/atom+xml")

MAX_SITEMAP_DEPTH = 2
MAX_SITEMAP_CHILDREN = 5
MAX_FEED_ITEMS = 200

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _clean_html_fragment(value: str | None) -> str:
    if not value:
        return ""
    soup = BeautifulSoup(value, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    return normalize_whitespace(decode_entities(soup.get_text(" ", strip=True)))


def _looks_like_html(text: str) -> bool:
    head = text[:1024].lstrip().lower()
    return head.startswith("<!doctype html") or head.startswith("<html")


def discover_feed_links(homepage_html: str, base_url: str) -> List[str]:
    """Return RSS/Atom alternate links advertised in a homepage's ``<head>``."""
    soup = BeautifulSoup(homepage_html, "html.parser")
    links: List[str] = []
    for tag in soup.find_all("link", href=True):
        link_type = (tag.get("type") or "").lower()
        if link_type not in FEED_LINK_TYPES:
            continue
        links.append(urljoin(base_url, tag["href"]))
    return links


def build_feed_candidates(source_url: str, homepage_html: str | None = None) -> List[str]:
    base = source_url.rstrip("/")
    candidates = [source_url]
    candidates.extend(f"{base}{suffix}" for suffix in FEED_SUFFIXES)
    if homepage_html:
        candidates.extend(discover_feed_links(homepage_html, source_url))
    seen: set[str] = set()
    ordered: List[str] = []
    for candidate in candidates:
        if candidate in seen:
            continue
        seen.add(candidate)
        ordered.append(candidate)
    return ordered


def _entry_datetime(entry: Any) -> datetime | None:
    for key in ("published_parsed", "updated_parsed"):
        value = entry.get(key)
        if value:
            return datetime.fromtimestamp(calendar.timegm(value), tz=timezone.utc)
    for key in ("published", "updated"):
        parsed = parse_datetime(entry.get(key))
        if parsed:
            return parsed
    return None


def parse_syndication(body: str) -> List[FeedItem]:
    """Parse RSS ``<item>`` or Atom ``<entry>`` elements into feed items."""
    parsed = feedparser.parse(body)
    if parsed.bozo and not parsed.entries:
        LOGGER.debug("Feed body did not parse: %s", parsed.get("bozo_exception"))
        return []
    items: List[FeedItem] = []
    for entry in parsed.entries:
        link = entry.get("link")
        if not link:
            hrefs = [item.get("href") for item in entry.get("links", []) if item.get("href")]
            link = hrefs[0] if hrefs else None
        if not link:
            continue
        items.append(
            FeedItem(
                title=_clean_html_fragment(entry.get("title")),
                link=link.strip(),
                published_at=_entry_datetime(entry),
                description=_clean_html_fragment(entry.get("summary")) or None,
            )
        )
    return items


def parse_sitemap(body: str) -> tuple[str | None, List[Any]]:
    """Classify a sitemap body.

    Returns ("index", [child urls]), ("urlset", [FeedItem, ...]) or (None, []).
    """
    if "<sitemapindex" not in body and "<urlset" not in body:
        return None, []
    soup = BeautifulSoup(body, "xml")
    index = soup.find("sitemapindex")
    if index is not None:
        children = []
        for sitemap in index.find_all("sitemap"):
            loc = sitemap.find("loc")
            if loc and loc.get_text(strip=True):
                children.append(loc.get_text(strip=True))
        return "index", children
    urlset = soup.find("urlset")
    if urlset is None:
        raise ParseError("sitemap body without urlset or sitemapindex")
    items: List[FeedItem] = []
    for node in urlset.find_all("url"):
        loc = node.find("loc")
        if not loc or not loc.get_text(strip=True):
            continue
        link = loc.get_text(strip=True)
        published = None
        for tag_name in ("publication_date", "lastmod", "updated"):
            tag = node.find(tag_name)
            if tag:
                published = parse_datetime(tag.get_text(strip=True))
                if published:
                    break
        items.append(FeedItem(title=title_from_url(link), link=link, published_at=published))
    return "urlset", items


def dedupe_and_sort(items: Sequence[FeedItem]) -> List[FeedItem]:
    seen: set[str] = set()
    unique: List[FeedItem] = []
    for item in items:
        key = canonicalize_url(item.link) or item.link
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    unique.sort(key=lambda item: item.published_at or _EPOCH, reverse=True)
    return unique


class FeedResolver:
    def __init__(self, fetcher: Fetcher, max_items: int = MAX_FEED_ITEMS) -> None:
        self.fetcher = fetcher
        self.max_items = max_items

    def resolve(self, source_url: str) -> tuple[str | None, List[FeedItem]]:
        """Return the first feed candidate yielding items, and its items."""
        homepage: FetchResult | None = None
        try:
            homepage = self.fetcher.fetch(source_url, cache_ttl=FEED_CACHE_TTL)
        except NetworkError as exc:
            LOGGER.warning("Source root fetch failed for %s: %s", source_url, exc)
        homepage_html = homepage.text if homepage and _looks_like_html(homepage.text) else None
        for candidate in build_feed_candidates(source_url, homepage_html):
            prefetched = homepage if candidate == source_url else None
            if candidate == source_url and homepage is None:
                continue
            try:
                items = self.read_feed(candidate, prefetched=prefetched)
            except (NetworkError, ParseError) as exc:
                LOGGER.debug("Feed candidate %s failed: %s", candidate, exc)
                continue
            if items:
                LOGGER.info("Resolved feed %s for %s (%s items)", candidate, source_url, len(items))
                return candidate, items
        return None, []

    def read_feed(self, feed_url: str, prefetched: FetchResult | None = None) -> List[FeedItem]:
        """Read a feed or sitemap, following sitemap indexes breadth-first."""
        queue: Deque[tuple[str, int]] = deque([(feed_url, 0)])
        visited: set[str] = set()
        items: List[FeedItem] = []
        while queue and len(items) < self.max_items:
            url, depth = queue.popleft()
            if url in visited:
                continue
            visited.add(url)
            if prefetched is not None and url == feed_url:
                response = prefetched
            else:
                try:
                    response = self.fetcher.fetch(url, cache_ttl=FEED_CACHE_TTL)
                except NetworkError:
                    if depth == 0:
                        raise
                    LOGGER.warning("Skipping unreachable child sitemap %s", url)
                    continue
            body = response.text or ""
            if _looks_like_html(body):
                continue
            entries = parse_syndication(body)
            if entries:
                items.extend(entries)
                continue
            try:
                kind, payload = parse_sitemap(body)
            except ParseError:
                if depth == 0:
                    raise
                LOGGER.warning("Skipping malformed child sitemap %s", url)
                continue
            if kind == "index":
                if depth >= MAX_SITEMAP_DEPTH:
                    LOGGER.debug("Sitemap depth cap reached at %s", url)
                    continue
                for child in payload[:MAX_SITEMAP_CHILDREN]:
                    if child not in visited:
                        queue.append((child, depth + 1))
            elif kind == "urlset":
                items.extend(payload)
        return dedupe_and_sort(items)[: self.max_items]

