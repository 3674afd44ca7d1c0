"""
Article extraction: metadata scrape plus readability main-content extraction,
merged into a single ExtractedArticle.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List
from urllib.parse import urlsplit

from bs4 import BeautifulSoup
from readability import Document

from src.regional_news.canonical import (
    canonicalize_url,
    decode_entities,
    normalize_whitespace,
    parse_datetime,
    title_from_url,
    utc_now,
)
from src.regional_news.fetching import PAGE_CACHE_TTL, Fetcher
from src.regional_news.flags import detect_paywall
from src.regional_news.models import ExtractedArticle, FeedItem

LOGGER = logging.getLogger(__name__)

MAX_CLASSIFICATION_LEAD = 4000
NOISE_TAGS = ["script", "style", "noscript", "svg", "iframe", "nav", "form", "button"]
BLOCK_TAGS = [
    "p",
    "div",
    "blockquote",
    "li",
    "h1",
    "h2",
    "h3",
    "h4",
    "h5",
    "h6",
    "section",
    "article",
    "figure",
    "figcaption",
]
SHORT_CONTENT_EXEMPT_HOSTS = ("facebook.com", "fb.watch")


def is_short_content_exempt(url: str) -> bool:
    host = (urlsplit(url).hostname or "").lower()
    return any(host == domain or host.endswith(f".{domain}") for domain in SHORT_CONTENT_EXEMPT_HOSTS)


def html_to_structured_text(fragment: str | None) -> str:
    """Plain text that keeps paragraph breaks: block closers become blank lines."""
    if not fragment:
        return ""
    soup = BeautifulSoup(fragment, "html.parser")
    for tag in soup(NOISE_TAGS):
        tag.decompose()
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for block in soup.find_all(BLOCK_TAGS):
        block.append("\n\n")
    text = decode_entities(soup.get_text())
    paragraphs: List[str] = []
    for chunk in text.split("\n\n"):
        lines = [normalize_whitespace(line) for line in chunk.split("\n")]
        joined = "\n".join(line for line in lines if line)
        if joined:
            paragraphs.append(joined)
    return "\n\n".join(paragraphs)


@dataclass
class ScrapedPage:
    title: str | None = None
    description: str | None = None
    image_url: str | None = None
    author: str | None = None
    published_at_raw: str | None = None
    canonical_url: str | None = None
    text: str = ""


def _meta_content(soup: BeautifulSoup, *names: str) -> str | None:
    for name in names:
        for attr in ("property", "name"):
            tag = soup.find("meta", attrs={attr: name})
            if tag and tag.get("content"):
                value = normalize_whitespace(decode_entities(tag["content"]))
                if value:
                    return value
    return None


def _collect_paragraph_text(node: Any) -> str:
    if not node:
        return ""
    paragraphs = [
        normalize_whitespace(p.get_text(" ", strip=True))
        for p in node.find_all("p")
        if p.get_text(strip=True)
    ]
    if paragraphs:
        return "\n\n".join(paragraphs)
    return normalize_whitespace(node.get_text(" ", strip=True))


def scrape_metadata(html: str) -> ScrapedPage:
    """OpenGraph/Twitter/canonical tags plus a naive article/main/body text fallback."""
    soup = BeautifulSoup(html, "html.parser")
    page = ScrapedPage()
    page.title = _meta_content(soup, "og:title", "twitter:title")
    if not page.title and soup.title and soup.title.string:
        page.title = normalize_whitespace(decode_entities(soup.title.string)) or None
    page.description = _meta_content(soup, "og:description", "twitter:description", "description")
    page.image_url = _meta_content(soup, "og:image", "twitter:image", "twitter:image:src")
    page.author = _meta_content(soup, "author", "article:author")
    page.published_at_raw = _meta_content(soup, "article:published_time", "og:published_time", "pubdate")
    if not page.published_at_raw:
        time_tag = soup.find("time", attrs={"datetime": True})
        if time_tag:
            page.published_at_raw = time_tag["datetime"]
    canonical = soup.find("link", rel="canonical", href=True)
    if canonical:
        page.canonical_url = canonical["href"].strip()

    for tag in soup(NOISE_TAGS):
        tag.decompose()
    for selector in ("article", "main", "body"):
        node = soup.find(selector)
        text = _collect_paragraph_text(node)
        if text:
            page.text = text
            break
    return page


def readable_content(html: str) -> tuple[str | None, str, str]:
    """Return (title, cleaned html, plain text) from the readability extractor."""
    try:
        document = Document(html)
        content_html = document.summary(html_partial=True)
        title = document.short_title()
    except Exception:  # noqa: BLE001
        LOGGER.debug("Readability extraction failed", exc_info=True)
        return None, "", ""
    text = normalize_whitespace(BeautifulSoup(content_html, "html.parser").get_text(" ", strip=True))
    title = normalize_whitespace(decode_entities(title)) if title else None
    if title == "[no-title]":
        title = None
    return title or None, content_html if text else "", text


def _usable_canonical(candidate: str | None) -> str | None:
    canonical = canonicalize_url(candidate)
    if not canonical or not urlsplit(canonical).path:
        return None
    return canonical


class ArticleExtractor:
    def __init__(self, fetcher: Fetcher) -> None:
        self.fetcher = fetcher

    def extract(self, url: str, source_url: str, feed_item: FeedItem | None = None) -> ExtractedArticle:
        """Fetch ``url`` and build an article; NetworkError propagates to the caller."""
        response = self.fetcher.fetch(url, cache_ttl=PAGE_CACHE_TTL)
        fallback_canonical = canonicalize_url(response.url) or canonicalize_url(url) or url
        if not response.is_html:
            return self.from_feed_only(fallback_canonical, source_url, feed_item)
        return self.from_html(response.text, fallback_canonical, source_url, feed_item)

    @staticmethod
    def from_feed_only(canonical_url: str, source_url: str, feed_item: FeedItem | None) -> ExtractedArticle:
        feed_title = feed_item.title if feed_item else ""
        body = (feed_item.description if feed_item else None) or ""
        return ExtractedArticle(
            canonical_url=canonical_url,
            source_url=source_url,
            title=feed_title or title_from_url(canonical_url),
            published_at=(feed_item.published_at if feed_item else None) or utc_now(),
            content_text=body,
            content_html="",
            classification_lead=body[:MAX_CLASSIFICATION_LEAD],
            is_html=False,
            paywall=detect_paywall("", canonical_url, body),
        )

    @staticmethod
    def from_html(
        html: str,
        canonical_url: str,
        source_url: str,
        feed_item: FeedItem | None = None,
    ) -> ExtractedArticle:
        scraped = scrape_metadata(html)
        readable_title, readable_html, readable_text = readable_content(html)
        feed_title = feed_item.title if feed_item else ""
        feed_description = (feed_item.description if feed_item else None) or ""

        title = readable_title or scraped.title or feed_title or title_from_url(canonical_url)
        structured = html_to_structured_text(readable_html)
        content_text = structured or readable_text or scraped.text or feed_description or scraped.description or ""
        feed_text = normalize_whitespace(" ".join(part for part in (feed_title, feed_description) if part))
        lead = readable_text or scraped.text or feed_text
        published_at = (
            parse_datetime(scraped.published_at_raw)
            or (feed_item.published_at if feed_item else None)
            or utc_now()
        )
        article_url = _usable_canonical(scraped.canonical_url) or canonical_url
        return ExtractedArticle(
            canonical_url=article_url,
            source_url=source_url,
            title=title,
            author=scraped.author,
            published_at=published_at,
            content_text=content_text,
            content_html=readable_html,
            classification_lead=lead[:MAX_CLASSIFICATION_LEAD],
            image_url=scraped.image_url,
            paywall=detect_paywall(html, article_url, content_text),
        )
