from __future__ import annotations

from typing import Dict, List

import pytest

from src.regional_news.errors import NetworkError
from src.regional_news.fetching import FetchResult


class FakeFetcher:
    """Serves canned bodies by URL; unknown URLs fail like a 404."""

    def __init__(self, pages: Dict[str, object] | None = None) -> None:
        self.pages: Dict[str, object] = dict(pages or {})
        self.calls: List[str] = []

    def add(self, url: str, body: str, content_type: str = "text/html") -> None:
        self.pages[url] = FetchResult(url=url, status=200, text=body, content_type=content_type)

    def fail(self, url: str, status: int | None) -> None:
        self.pages[url] = NetworkError(url, f"HTTP {status}", status=status)

    def fetch(self, url: str, cache_ttl: int | None = None) -> FetchResult:
        self.calls.append(url)
        page = self.pages.get(url)
        if page is None:
            raise NetworkError(url, "HTTP 404", status=404)
        if isinstance(page, Exception):
            raise page
        return page


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()
