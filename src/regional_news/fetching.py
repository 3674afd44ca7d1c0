"""
HTTP fetch layer with a descriptive User-Agent, per-request timeout and a
best-effort response cache.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Protocol

import requests

from src.regional_news.canonical import url_hash
from src.regional_news.errors import NetworkError
from src.regional_news.stores import KeyValueStore, cache_get_json, cache_set_json

LOGGER = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "KentuckyNewsBot/1.0 (+https://kentuckynews.local)"
DEFAULT_TIMEOUT = 15

FEED_CACHE_TTL = 600
PAGE_CACHE_TTL = 900
SEARCH_CACHE_TTL = 1200


@dataclass
class FetchResult:
    url: str
    status: int
    text: str
    content_type: str = ""

    @property
    def is_html(self) -> bool:
        if "html" in self.content_type.lower():
            return True
        head = self.text[:1024].lower()
        return "<html" in head or "<!doctype html" in head

    @property
    def is_xml(self) -> bool:
        lowered = self.content_type.lower()
        return "xml" in lowered or self.text.lstrip().startswith("<?xml")


class Fetcher(Protocol):
    def fetch(self, url: str, cache_ttl: int | None = PAGE_CACHE_TTL) -> FetchResult:
        ...


class HttpFetcher:
    def __init__(
        self,
        cache: KeyValueStore | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: int = DEFAULT_TIMEOUT,
    ) -> None:
        self.cache = cache
        self.timeout = timeout
        self._headers = {
            "User-Agent": user_agent,
            "Accept": "text/html,application/xhtml+xml,application/rss+xml,application/atom+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
        }

    def fetch(self, url: str, cache_ttl: int | None = PAGE_CACHE_TTL) -> FetchResult:
        """Fetch ``url``; raise NetworkError on transport failures and HTTP status >= 400."""
        key = f"fetch:{url_hash(url)}"
        if cache_ttl:
            cached = cache_get_json(self.cache, key)
            if isinstance(cached, dict):
                LOGGER.debug("Fetch cache hit for %s", url)
                return FetchResult(**cached)
        try:
            response = requests.get(
                url,
                timeout=self.timeout,
                headers=self._headers,
                allow_redirects=True,
            )
        except requests.RequestException as exc:
            raise NetworkError(url, f"request failed: {exc}") from exc
        if response.status_code >= 400:
            raise NetworkError(url, f"HTTP {response.status_code}", status=response.status_code)
        result = FetchResult(
            url=response.url or url,
            status=response.status_code,
            text=response.text,
            content_type=response.headers.get("Content-Type", ""),
        )
        if cache_ttl:
            cache_set_json(self.cache, key, asdict(result), cache_ttl)
        return result
