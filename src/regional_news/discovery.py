"""
Fallback article discovery for sources without a usable feed: robots.txt policy,
article-shaped link heuristics, a shallow section crawl and publisher search-page
rules.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, List, Pattern, Sequence
from urllib.parse import parse_qs, quote_plus, urljoin, urlsplit, urlunsplit

from bs4 import BeautifulSoup

from src.regional_news.errors import NetworkError
from src.regional_news.fetching import PAGE_CACHE_TTL, SEARCH_CACHE_TTL, Fetcher
from src.regional_news.stores import KeyValueStore, cache_get_json, cache_set_json

LOGGER = logging.getLogger(__name__)

FALLBACK_CRAWL_MAX_LINKS = 12
FALLBACK_CRAWL_MAX_SECTION_PAGES = 3
ROBOTS_CACHE_TTL = 3600
ROBOTS_AGENT_TOKEN = "kentuckynewsbot"

# Publishers that grant syndication use explicitly; robots.txt is not consulted.
TRUSTED_NEWS_DOMAINS = frozenset(
    {
        "npr.org",
        "wkyt.com",
        "wymt.com",
        "lex18.com",
        "kentucky.com",
        "courier-journal.com",
        "kentuckylantern.com",
        "wfpl.org",
        "whas11.com",
        "wlky.com",
        "wdrb.com",
        "wkms.org",
        "weku.org",
        "kycir.org",
        "wbko.com",
        "wpsdlocal6.com",
    }
)

ARTICLE_PATH_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"/news/[^/]+",
        r"/sports/[^/]+",
        r"/weather/[^/]+",
        r"/schools?/[^/]+",
        r"/obit(?:uary|uaries)?/[^/]+",
        r"/story/[^/]+",
        r"/article/[^/]+",
        r"/20\d{2}/(?:0?[1-9]|1[0-2])/",
    )
]
EXCLUDED_PATH_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"/feed/?$",
        r"/tag/",
        r"/category/",
        r"\.(?:xml|rss|json|pdf|jpe?g|png|gif|mp3|mp4)$",
        r"/videos?/",
    )
]
UNSAFE_SCHEMES = ("javascript:", "data:", "vbscript:", "mailto:", "tel:")
SECTION_PATHS = frozenset(
    {"/news", "/sports", "/weather", "/school", "/schools", "/obituaries", "/obituary", "/local"}
)


def _bare_host(url: str) -> str:
    host = (urlsplit(url).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def _same_origin(url: str, base_url: str) -> bool:
    return _bare_host(url) == _bare_host(base_url)


def is_trusted_domain(url: str) -> bool:
    host = _bare_host(url)
    return any(host == domain or host.endswith(f".{domain}") for domain in TRUSTED_NEWS_DOMAINS)


def is_article_link(url: str) -> bool:
    parts = urlsplit(url)
    if parts.scheme not in {"http", "https"}:
        return False
    path = parts.path or "/"
    if path == "/" or path.rstrip("/").lower() in SECTION_PATHS:
        return False
    if any(pattern.search(path) for pattern in EXCLUDED_PATH_PATTERNS):
        return False
    if "outputtype" in {key.lower() for key in parse_qs(parts.query)}:
        return False
    return any(pattern.search(path) for pattern in ARTICLE_PATH_PATTERNS)


def _iter_hrefs(html: str, base_url: str) -> List[str]:
    soup = BeautifulSoup(html, "html.parser")
    links: List[str] = []
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href or href.startswith("#") or href.lower().startswith(UNSAFE_SCHEMES):
            continue
        absolute = urljoin(base_url, href)
        parts = urlsplit(absolute)
        links.append(urlunsplit((parts.scheme, parts.netloc, parts.path, parts.query, "")))
    return links


def extract_article_links(html: str, base_url: str, limit: int) -> List[str]:
    """Same-origin links whose path looks like an article, in page order."""
    results: List[str] = []
    for link in _iter_hrefs(html, base_url):
        if len(results) >= limit:
            break
        if link in results or not _same_origin(link, base_url):
            continue
        if is_article_link(link):
            results.append(link)
    return results


def extract_section_links(html: str, base_url: str) -> List[str]:
    results: List[str] = []
    for link in _iter_hrefs(html, base_url):
        if not _same_origin(link, base_url):
            continue
        path = urlsplit(link).path.rstrip("/").lower()
        if path in SECTION_PATHS and link not in results:
            results.append(link)
    return results


@dataclass(frozen=True)
class SearchPageRule:
    host: str
    query_param: str
    link_pattern: Pattern[str]
    exclude: Pattern[str] | None = None
    search_path: str = "/search/"

    def build_url(self, query: str) -> str:
        return f"https://www.{self.host}{self.search_path}?{self.query_param}={quote_plus(query)}"


SEARCH_PAGE_RULES = (
    SearchPageRule("kentucky.com", "q", re.compile(r"/article\d+\.html$")),
    SearchPageRule(
        "wymt.com",
        "query",
        re.compile(r"^/\d{4}/\d{2}/\d{2}/[a-z0-9-]+/?$"),
        exclude=re.compile(r"/video/"),
    ),
)


def match_search_rule(url: str) -> SearchPageRule | None:
    parts = urlsplit(url)
    host = _bare_host(url)
    for rule in SEARCH_PAGE_RULES:
        if host != rule.host:
            continue
        if not parts.path.startswith(rule.search_path.rstrip("/")):
            continue
        if rule.query_param in parse_qs(parts.query):
            return rule
    return None


def is_structured_search_url(url: str) -> bool:
    return match_search_rule(url) is not None


def extract_structured_links(html: str, page_url: str, rule: SearchPageRule, limit: int) -> List[str]:
    results: List[str] = []
    for link in _iter_hrefs(html, page_url):
        if len(results) >= limit:
            break
        if _bare_host(link) != rule.host:
            continue
        parts = urlsplit(link)
        if not rule.link_pattern.search(parts.path):
            continue
        if rule.exclude and rule.exclude.search(parts.path):
            continue
        clean = urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
        if clean not in results:
            results.append(clean)
    return results


def build_county_search_urls(county: str) -> List[str]:
    """Publisher search pages that surface coverage of ``county``."""
    query = f"{county} County"
    return [rule.build_url(query) for rule in SEARCH_PAGE_RULES]


def _pattern_to_regex(pattern: str) -> Pattern[str]:
    anchored = pattern.endswith("$")
    body = pattern[:-1] if anchored else pattern
    regex = re.escape(body).replace(r"\*", ".*")
    return re.compile(f"^{regex}{'$' if anchored else ''}")


def parse_robots(text: str, agent_token: str = ROBOTS_AGENT_TOKEN) -> List[tuple[str, str]]:
    """Return the (allow|disallow, pattern) rules applying to ``agent_token``.

    A group naming the agent wins over the ``*`` group.
    """
    groups: List[tuple[List[str], List[tuple[str, str]]]] = []
    agents: List[str] = []
    rules: List[tuple[str, str]] = []
    collecting_agents = False
    for raw_line in text.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if ":" not in line:
            continue
        field, value = (part.strip() for part in line.split(":", 1))
        field = field.lower()
        if field == "user-agent":
            if not collecting_agents and agents:
                groups.append((agents, rules))
                agents, rules = [], []
            agents.append(value.lower())
            collecting_agents = True
            continue
        collecting_agents = False
        if field in {"allow", "disallow"} and agents:
            rules.append((field, value))
    if agents:
        groups.append((agents, rules))

    token = agent_token.lower()
    specific = [rules for names, rules in groups if any(name != "*" and name in token for name in names)]
    chosen = specific or [rules for names, rules in groups if "*" in names]
    return [rule for group in chosen for rule in group]


def robots_allows(rules: Sequence[tuple[str, str]], path: str) -> bool:
    """Longest matching pattern wins; on a tie ``allow`` wins."""
    best_kind = None
    best_length = -1
    for kind, pattern in rules:
        if not pattern:
            continue
        if not _pattern_to_regex(pattern).match(path):
            continue
        length = len(pattern)
        if length > best_length or (length == best_length and kind == "allow"):
            best_kind, best_length = kind, length
    return best_kind != "disallow"


class RobotsChecker:
    def __init__(
        self,
        fetcher: Fetcher,
        cache: KeyValueStore | None = None,
        agent_token: str = ROBOTS_AGENT_TOKEN,
    ) -> None:
        self.fetcher = fetcher
        self.cache = cache
        self.agent_token = agent_token

    def allowed(self, url: str) -> bool:
        if is_trusted_domain(url) or is_structured_search_url(url):
            return True
        parts = urlsplit(url)
        origin = f"{parts.scheme}://{parts.netloc}"
        key = f"robots:{origin}"
        policy = cache_get_json(self.cache, key)
        if not isinstance(policy, dict):
            policy = self._load_policy(origin)
            cache_set_json(self.cache, key, policy, ROBOTS_CACHE_TTL)
        mode = policy.get("mode")
        if mode == "allow_all":
            return True
        if mode == "deny_all":
            return False
        path = parts.path or "/"
        if parts.query:
            path = f"{path}?{parts.query}"
        rules = [tuple(rule) for rule in policy.get("rules", [])]
        return robots_allows(rules, path)

    def _load_policy(self, origin: str) -> dict[str, Any]:
        try:
            response = self.fetcher.fetch(f"{origin}/robots.txt", cache_ttl=None)
        except NetworkError as exc:
            if exc.status is not None and 400 <= exc.status < 500:
                return {"mode": "allow_all"}
            LOGGER.warning("robots.txt unavailable for %s (%s); denying crawl", origin, exc)
            return {"mode": "deny_all"}
        return {"mode": "rules", "rules": parse_robots(response.text, self.agent_token)}


class FallbackDiscoverer:
    def __init__(self, fetcher: Fetcher, robots: RobotsChecker) -> None:
        self.fetcher = fetcher
        self.robots = robots

    def allows(self, url: str) -> bool:
        return self.robots.allowed(url)

    def _permitted(self, links: Sequence[str]) -> List[str]:
        allowed = [link for link in links if self.robots.allowed(link)]
        if len(allowed) < len(links):
            LOGGER.debug("robots.txt filtered %s of %s links", len(links) - len(allowed), len(links))
        return allowed

    def discover(self, source_url: str, limit: int) -> List[str]:
        """Collect candidate article URLs from a source page without a feed."""
        max_links = min(limit, FALLBACK_CRAWL_MAX_LINKS)
        if max_links <= 0:
            return []
        if not self.robots.allowed(source_url):
            LOGGER.warning("robots.txt disallows crawling %s", source_url)
            return []
        rule = match_search_rule(source_url)
        try:
            page = self.fetcher.fetch(source_url, cache_ttl=SEARCH_CACHE_TTL if rule else PAGE_CACHE_TTL)
        except NetworkError as exc:
            LOGGER.warning("Fallback discovery fetch failed for %s: %s", source_url, exc)
            return []
        if rule:
            return extract_structured_links(page.text, source_url, rule, max_links)

        links = self._permitted(extract_article_links(page.text, source_url, max_links))
        if len(links) >= max_links:
            return links
        sections = extract_section_links(page.text, source_url)[:FALLBACK_CRAWL_MAX_SECTION_PAGES]
        for section_url in sections:
            if len(links) >= max_links:
                break
            if not self.robots.allowed(section_url):
                LOGGER.debug("robots.txt disallows section %s", section_url)
                continue
            try:
                section_page = self.fetcher.fetch(section_url, cache_ttl=PAGE_CACHE_TTL)
            except NetworkError as exc:
                LOGGER.warning("Section page fetch failed for %s: %s", section_url, exc)
                continue
            for link in self._permitted(extract_article_links(section_page.text, section_url, max_links)):
                if link not in links:
                    links.append(link)
        LOGGER.info("Fallback discovery found %s links for %s", len(links[:max_links]), source_url)
        return links[:max_links]
