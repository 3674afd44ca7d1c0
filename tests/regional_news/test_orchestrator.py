import json
import threading
from collections import Counter
from typing import Dict, List

import pytest

from src.regional_news.discovery import FallbackDiscoverer, RobotsChecker
from src.regional_news.errors import NetworkError, StoreUnavailableError
from src.regional_news.models import Duplicate, FeedItem, Inserted, Rejected, Source
from src.regional_news.orchestrator import (
    IngestOrchestrator,
    is_low_value,
    rebalance_batches,
    select_sources_for_run,
)
from src.regional_news.stores import MemoryKeyValueStore


def make_sources(count: int, prefix: str = "news", category: str = "news", priority: str = "high") -> List[Source]:
    return [Source(f"https://{prefix}{idx}.example.com", f"{prefix} {idx}", priority, category) for idx in range(count)]


def make_items(source_url: str, count: int) -> List[FeedItem]:
    return [FeedItem(title=f"Story {idx}", link=f"{source_url}/news/story-{idx}") for idx in range(count)]


class FakeResolver:
    def __init__(self, feeds: Dict[str, object] | None = None) -> None:
        self.feeds = feeds or {}
        self.calls: List[str] = []

    def resolve(self, source_url: str):
        self.calls.append(source_url)
        feed = self.feeds.get(source_url)
        if isinstance(feed, Exception):
            raise feed
        if feed is None:
            return None, []
        return f"{source_url}/feed", feed


class FakeDiscoverer:
    def __init__(self, links: Dict[str, List[str]] | None = None, denied: set[str] | None = None) -> None:
        self.links = links or {}
        self.denied = denied or set()
        self.calls: List[str] = []

    def allows(self, url: str) -> bool:
        return url not in self.denied

    def discover(self, source_url: str, limit: int) -> List[str]:
        self.calls.append(source_url)
        return self.links.get(source_url, [])[:limit]


class FakePipeline:
    """Inserts everything except URLs with a scripted outcome."""

    def __init__(self, outcomes: Dict[str, object] | None = None) -> None:
        self.outcomes = outcomes or {}
        self.calls: List[str] = []
        self.lock = threading.Lock()

    def ingest(self, url: str, source_url: str, feed_item=None):
        with self.lock:
            self.calls.append(url)
            article_id = len(self.calls)
        outcome = self.outcomes.get(url)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome or Inserted(article_id, f"hash-{article_id}", "today")


def make_orchestrator(pipeline=None, resolver=None, discoverer=None, cache=None, concurrency: int = 4) -> IngestOrchestrator:
    return IngestOrchestrator(
        pipeline=pipeline or FakePipeline(),
        resolver=resolver or FakeResolver(),
        discoverer=discoverer or FakeDiscoverer(),
        cache=cache,
        concurrency=concurrency,
    )


def test_rotation_advances_and_covers_every_source() -> None:
    sources = make_sources(5)
    cache = MemoryKeyValueStore()

    runs = [select_sources_for_run(sources, 2, cache, trigger="scheduled:high") for _ in range(3)]

    assert [[source.url for source in run] for run in runs[:2]] == [
        [sources[0].url, sources[1].url],
        [sources[2].url, sources[3].url],
    ]
    assert [source.url for source in runs[2]] == [sources[4].url, sources[0].url]
    assert {source.url for run in runs for source in run} == {source.url for source in sources}
    assert cache.get("ingest:rotation:scheduled:high") == "1"
    assert cache.get("ingest:rotation:scheduled:normal") is None


def test_rotation_skipped_for_small_or_manual_runs() -> None:
    sources = make_sources(3)
    cache = MemoryKeyValueStore()
    assert select_sources_for_run(sources, 5, cache) == sources
    assert select_sources_for_run(sources, 1, cache, rotate=False) == sources
    assert cache.get("ingest:rotation:scheduled") is None


def test_rebalance_swaps_with_a_donor_batch() -> None:
    schools = make_sources(2, "school", "schools", "low")
    news = make_sources(4)
    run_sources = schools + news

    batches = rebalance_batches(run_sources, run_sources, 2)

    assert all(not all(is_low_value(source) for source in batch) for batch in batches)
    assert Counter(source.url for batch in batches for source in batch) == Counter(s.url for s in run_sources)


def test_rebalance_pulls_from_sources_outside_the_run() -> None:
    schools = make_sources(2, "school", "schools", "low")
    news = make_sources(2)
    run_sources = schools + news[:1]

    batches = rebalance_batches(run_sources, schools + news, 2)

    assert [source.url for source in batches[0]] == [schools[0].url, news[1].url]


def test_rebalance_leaves_all_low_runs_alone() -> None:
    schools = make_sources(3, "school", "schools", "low")
    batches = rebalance_batches(schools, schools, 2)
    assert [source.url for batch in batches for source in batch] == [source.url for source in schools]


def test_feed_items_are_capped_per_source() -> None:
    source = make_sources(1)[0]
    pipeline = FakePipeline()
    orchestrator = make_orchestrator(pipeline, FakeResolver({source.url: make_items(source.url, 5)}))

    status = orchestrator.ingest_source(source, limit=3)

    assert status.feed_url == f"{source.url}/feed"
    assert status.discovered == 3
    assert status.inserted == 3
    assert not status.used_fallback
    assert len(pipeline.calls) == 3


def test_fallback_discovery_and_source_url_as_last_resort() -> None:
    with_links, bare = make_sources(2)
    discoverer = FakeDiscoverer({with_links.url: [f"{with_links.url}/news/a", f"{with_links.url}/news/b"]})
    pipeline = FakePipeline()
    orchestrator = make_orchestrator(pipeline, FakeResolver(), discoverer)

    status = orchestrator.ingest_source(with_links, limit=10)
    assert status.used_fallback
    assert status.discovered == 2

    status = orchestrator.ingest_source(bare, limit=10)
    assert status.discovered == 1
    assert pipeline.calls[-1] == bare.url


def test_source_url_not_ingested_when_robots_denies_it(fetcher) -> None:
    source = Source("https://blocked.example.org", "Blocked", "high")
    fetcher.add("https://blocked.example.org/robots.txt", "User-agent: *\nDisallow: /\n", content_type="text/plain")
    discoverer = FallbackDiscoverer(fetcher, RobotsChecker(fetcher, MemoryKeyValueStore()))
    pipeline = FakePipeline()
    orchestrator = make_orchestrator(pipeline, FakeResolver(), discoverer)

    status = orchestrator.ingest_source(source, limit=10)

    assert status.used_fallback
    assert status.discovered == 0
    assert pipeline.calls == []
    assert "https://blocked.example.org" not in fetcher.calls


def test_search_page_sources_skip_feed_resolution() -> None:
    source = Source("https://www.kentucky.com/search/?q=Laurel+County", "Laurel search", "low")
    resolver = FakeResolver()
    pipeline = FakePipeline()
    orchestrator = make_orchestrator(pipeline, resolver, FakeDiscoverer())

    status = orchestrator.ingest_source(source, limit=5)

    assert resolver.calls == []
    assert status.discovered == 0
    assert pipeline.calls == []


def test_item_outcomes_are_tallied_with_samples() -> None:
    source = make_sources(1)[0]
    items = make_items(source.url, 4)
    pipeline = FakePipeline(
        {
            items[1].link: Duplicate("url hash already exists", "h1", 9),
            items[2].link: Rejected("content too short (12 words)", "h2", low_word_count=True),
            items[3].link: NetworkError(items[3].link, "HTTP 500", status=500),
        }
    )
    orchestrator = make_orchestrator(pipeline, FakeResolver({source.url: items}))

    status = orchestrator.ingest_source(source, limit=10)

    assert (status.processed, status.inserted, status.duplicate, status.rejected) == (4, 1, 1, 2)
    assert status.low_word_discards == 1
    reasons = [sample["reason"] for sample in status.samples]
    assert reasons[0] == "url hash already exists"
    assert reasons[2].startswith("fetch failed")


def test_source_failures_are_isolated_and_metrics_persisted() -> None:
    good, broken = make_sources(2)
    cache = MemoryKeyValueStore()
    resolver = FakeResolver({good.url: make_items(good.url, 2), broken.url: RuntimeError("parser exploded")})
    orchestrator = make_orchestrator(FakePipeline(), resolver, cache=cache)

    metrics = orchestrator.run([good, broken], limit_per_source=5)

    assert metrics.sources_attempted == 2
    assert metrics.inserted == 2
    assert metrics.source_errors == 1
    errors = {status.source_url: status.error for status in metrics.sources}
    assert errors[good.url] is None
    assert "parser exploded" in errors[broken.url]

    latest = json.loads(cache.get("ingest:metrics:latest"))
    assert latest["run_id"] == metrics.run_id
    assert latest["inserted"] == 2
    assert json.loads(cache.get(f"ingest:metrics:{metrics.run_id}"))["source_errors"] == 1


def test_run_samples_carry_the_source() -> None:
    source = make_sources(1)[0]
    items = make_items(source.url, 1)
    pipeline = FakePipeline({items[0].link: Duplicate("url hash already exists")})
    orchestrator = make_orchestrator(pipeline, FakeResolver({source.url: items}))

    metrics = orchestrator.run([source], limit_per_source=5)

    assert metrics.samples == [
        {"url": items[0].link, "status": "duplicate", "reason": "url hash already exists", "source": source.url}
    ]


def test_store_outage_aborts_the_run_after_persisting_metrics() -> None:
    first, second = make_sources(2)
    cache = MemoryKeyValueStore()
    items = make_items(first.url, 1)
    pipeline = FakePipeline({items[0].link: StoreUnavailableError("database is locked")})
    resolver = FakeResolver({first.url: items, second.url: make_items(second.url, 1)})
    orchestrator = make_orchestrator(pipeline, resolver, cache=cache, concurrency=1)

    with pytest.raises(StoreUnavailableError):
        orchestrator.run([first, second], limit_per_source=5)

    assert resolver.calls == [first.url]
    latest = json.loads(cache.get("ingest:metrics:latest"))
    assert latest["source_errors"] == 1


def test_manual_run_skips_low_priority_by_default() -> None:
    high = make_sources(1)[0]
    low = make_sources(1, "weekly", priority="low")[0]
    resolver = FakeResolver()
    orchestrator = make_orchestrator(FakePipeline(), resolver, FakeDiscoverer())

    metrics = orchestrator.run_manual([high, low])
    assert metrics.trigger == "manual"
    assert resolver.calls == [high.url]

    orchestrator.run_manual([high, low], include_low_priority=True)
    assert sorted(resolver.calls[1:]) == sorted([high.url, low.url])


def test_scheduled_run_rotates_within_tier() -> None:
    sources = make_sources(3) + make_sources(2, "paper", priority="normal")
    cache = MemoryKeyValueStore()
    resolver = FakeResolver()
    orchestrator = make_orchestrator(FakePipeline(), resolver, FakeDiscoverer(), cache=cache)

    metrics = orchestrator.run_scheduled(sources, priority="high", max_sources=2)

    assert metrics.trigger == "scheduled:high"
    assert sorted(resolver.calls) == sorted([sources[0].url, sources[1].url])
    assert cache.get("ingest:rotation:scheduled:high") == "2"
    with pytest.raises(ValueError):
        orchestrator.run_scheduled(sources, priority="urgent")
