"""
Seed catalogue of publisher sources, grouped by scheduling tier.
"""

from __future__ import annotations

from typing import Iterable, List, Sequence

from src.regional_news.discovery import build_county_search_urls
from src.regional_news.models import PRIORITY_TIERS, Source

DEFAULT_SOURCES: List[Source] = [
    Source("https://kentuckylantern.com/feed/", "Kentucky Lantern", "high"),
    Source("https://www.wkyt.com", "WKYT", "high"),
    Source("https://www.wymt.com", "WYMT", "high"),
    Source("https://www.lex18.com", "LEX18", "high"),
    Source("https://www.kentucky.com", "Lexington Herald-Leader", "high"),
    Source("https://www.courier-journal.com", "Courier Journal", "high"),
    Source("https://wfpl.org", "WFPL", "high"),
    Source("https://www.whas11.com", "WHAS11", "normal"),
    Source("https://www.wlky.com", "WLKY", "normal"),
    Source("https://www.wdrb.com", "WDRB", "normal"),
    Source("https://www.wbko.com", "WBKO", "normal"),
    Source("https://www.wpsdlocal6.com", "WPSD Local 6", "normal"),
    Source("https://www.wkms.org", "WKMS", "normal"),
    Source("https://www.weku.org", "WEKU", "normal"),
    Source("https://www.richmondregister.com", "Richmond Register", "normal"),
    Source("https://www.state-journal.com", "State Journal", "normal"),
    Source("https://www.thenewsenterprise.com", "News-Enterprise", "normal"),
    Source("https://www.messenger-inquirer.com", "Messenger-Inquirer", "normal"),
    Source("https://www.paducahsun.com", "Paducah Sun", "low"),
    Source("https://www.hazard-herald.com", "Hazard Herald", "low"),
    Source("https://www.fayette.kyschools.us", "Fayette County Public Schools", "low", "schools"),
    Source("https://www.jefferson.kyschools.us", "Jefferson County Public Schools", "low", "schools"),
    Source("https://www.warren.kyschools.us", "Warren County Public Schools", "low", "schools"),
    Source("https://www.pike.kyschools.us", "Pike County Schools", "low", "schools"),
]


def build_county_search_sources(counties: Iterable[str], priority: str = "low") -> List[Source]:
    """Publisher search pages for each county, used to backfill thin coverage."""
    sources: List[Source] = []
    for county in counties:
        for url in build_county_search_urls(county):
            sources.append(Source(url, f"{county} County search", priority))
    return sources


def sources_for_tier(sources: Sequence[Source], priority: str) -> List[Source]:
    if priority not in PRIORITY_TIERS:
        raise ValueError(f"Unknown priority tier: {priority}")
    return [source for source in sources if source.priority == priority]


def sources_from_urls(urls: Iterable[str]) -> List[Source]:
    return [Source(url.strip(), url.strip(), "high") for url in urls if url and url.strip()]
