"""
Multi-source ingestion runs: source rotation, fair batching, bounded
concurrency, per-source failure isolation and run metrics.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, List, Sequence
from uuid import uuid4

from src.regional_news.canonical import utc_now
from src.regional_news.discovery import FallbackDiscoverer, is_structured_search_url
from src.regional_news.errors import NetworkError, ParseError, StoreUnavailableError
from src.regional_news.feeds import FeedResolver
from src.regional_news.models import FeedItem, IngestOutcome, Rejected, RunMetrics, Source, SourceStatus
from src.regional_news.pipeline import ArticlePipeline
from src.regional_news.sources import sources_for_tier
from src.regional_news.stores import KeyValueStore, cache_get, cache_set, cache_set_json

LOGGER = logging.getLogger(__name__)

INGEST_CONCURRENCY = 8
SCHEDULED_LIMIT_PER_SOURCE = 15
SCHEDULED_SOURCES_PER_RUN = 10
MANUAL_LIMIT_PER_SOURCE = 10
ROTATION_TTL = 30 * 24 * 3600
METRICS_TTL = 7 * 24 * 3600
MAX_RUN_SAMPLES = 200
MAX_SOURCE_SAMPLES = 50
LOW_VALUE_CATEGORIES = frozenset({"schools"})


def is_low_value(source: Source) -> bool:
    return source.category in LOW_VALUE_CATEGORIES


def select_sources_for_run(
    sources: Sequence[Source],
    max_sources: int,
    cache: KeyValueStore | None = None,
    trigger: str = "scheduled",
    rotate: bool = True,
) -> List[Source]:
    """Pick this run's window of sources and advance the persisted rotation offset."""
    if not sources:
        return []
    if not rotate or len(sources) <= max_sources:
        return list(sources)
    key = f"ingest:rotation:{trigger}"
    stored = cache_get(cache, key)
    offset = int(stored) % len(sources) if stored and stored.isdigit() else 0
    rotated = list(sources[offset:]) + list(sources[:offset])
    selected = rotated[:max_sources]
    next_offset = (offset + len(selected)) % len(sources)
    cache_set(cache, key, str(next_offset), ROTATION_TTL)
    LOGGER.info("Rotation %s: offset %s -> %s (%s of %s sources)", trigger, offset, next_offset, len(selected), len(sources))
    return selected


def chunked(items: Sequence[Source], size: int) -> List[List[Source]]:
    size = max(1, size)
    return [list(items[idx : idx + size]) for idx in range(0, len(items), size)]


def rebalance_batches(
    run_sources: Sequence[Source],
    all_sources: Sequence[Source],
    batch_size: int,
) -> List[List[Source]]:
    """Split into batches so none is made only of low-value sources when avoidable.

    The last slot of an all-low-value batch is swapped with a non-low-value source
    from a batch that can spare one, or replaced from the sources outside this run.
    """
    batches = chunked(list(run_sources), batch_size)
    selected = {source.url for source in run_sources}
    pool = [source for source in all_sources if source.url not in selected and not is_low_value(source)]
    for batch in batches:
        if not all(is_low_value(source) for source in batch):
            continue
        donor_found = False
        for other in batches:
            if other is batch or sum(not is_low_value(source) for source in other) < 2:
                continue
            position = next(idx for idx, source in enumerate(other) if not is_low_value(source))
            other[position], batch[-1] = batch[-1], other[position]
            donor_found = True
            break
        if donor_found:
            continue
        if pool:
            replacement = pool.pop(0)
            LOGGER.debug("Replacing %s with %s for batch fairness", batch[-1].url, replacement.url)
            batch[-1] = replacement
        else:
            LOGGER.debug("No other-category source available to rebalance a low-value batch")
    return batches


class IngestOrchestrator:
    def __init__(
        self,
        pipeline: ArticlePipeline,
        resolver: FeedResolver,
        discoverer: FallbackDiscoverer,
        cache: KeyValueStore | None = None,
        concurrency: int = INGEST_CONCURRENCY,
        clock: Callable = utc_now,
    ) -> None:
        self.pipeline = pipeline
        self.resolver = resolver
        self.discoverer = discoverer
        self.cache = cache
        self.concurrency = concurrency
        self.clock = clock

    def run_manual(
        self,
        sources: Sequence[Source],
        include_low_priority: bool = False,
        limit_per_source: int = MANUAL_LIMIT_PER_SOURCE,
    ) -> RunMetrics:
        selected = [source for source in sources if include_low_priority or source.priority != "low"]
        return self.run(selected, limit_per_source, trigger="manual")

    def run_scheduled(
        self,
        sources: Sequence[Source],
        priority: str = "high",
        max_sources: int = SCHEDULED_SOURCES_PER_RUN,
        limit_per_source: int = SCHEDULED_LIMIT_PER_SOURCE,
    ) -> RunMetrics:
        trigger = f"scheduled:{priority}"
        tier = sources_for_tier(sources, priority)
        selected = select_sources_for_run(tier, max_sources, self.cache, trigger=trigger)
        return self.run(selected, limit_per_source, trigger=trigger, all_sources=tier)

    def run(
        self,
        sources: Sequence[Source],
        limit_per_source: int,
        trigger: str = "manual",
        all_sources: Sequence[Source] | None = None,
    ) -> RunMetrics:
        """Process ``sources`` in bounded concurrent batches.

        Only StoreUnavailableError escapes; it is raised after the current batch
        settles and the partial metrics are persisted.
        """
        metrics = RunMetrics(run_id=uuid4().hex, trigger=trigger, started_at=self.clock())
        batches = rebalance_batches(sources, all_sources or sources, self.concurrency)
        fatal: StoreUnavailableError | None = None
        for batch_no, batch in enumerate(batches, start=1):
            LOGGER.info("Batch %s/%s: %s sources", batch_no, len(batches), len(batch))
            with ThreadPoolExecutor(max_workers=len(batch)) as executor:
                futures = {
                    executor.submit(self.ingest_source, source, limit_per_source): source for source in batch
                }
                for future in as_completed(futures):
                    source = futures[future]
                    try:
                        status = future.result()
                    except StoreUnavailableError as exc:
                        LOGGER.error("Article store unavailable while ingesting %s: %s", source.url, exc)
                        fatal = fatal or exc
                        status = SourceStatus(source.url, error=str(exc))
                    except Exception as exc:  # noqa: BLE001
                        LOGGER.exception("Source %s failed", source.url)
                        status = SourceStatus(source.url, error=f"{type(exc).__name__}: {exc}")
                    self._record(metrics, status)
            if fatal is not None:
                break
        metrics.finished_at = self.clock()
        self._persist_metrics(metrics)
        LOGGER.info(
            "Run %s (%s): %s sources, %s processed, %s inserted, %s duplicate, %s rejected, %s source errors",
            metrics.run_id,
            trigger,
            metrics.sources_attempted,
            metrics.processed,
            metrics.inserted,
            metrics.duplicate,
            metrics.rejected,
            metrics.source_errors,
        )
        if fatal is not None:
            raise fatal
        return metrics

    def ingest_source(self, source: Source, limit: int) -> SourceStatus:
        status = SourceStatus(source.url)
        candidates: List[tuple[str, FeedItem | None]] = []
        search_page = is_structured_search_url(source.url)
        if not search_page:
            feed_url, items = self.resolver.resolve(source.url)
            status.feed_url = feed_url
            candidates = [(item.link, item) for item in items[:limit]]
        if not candidates:
            status.used_fallback = True
            links = self.discoverer.discover(source.url, limit)
            if not links and not search_page and self.discoverer.allows(source.url):
                links = [source.url]
            candidates = [(link, None) for link in links[:limit]]
        status.discovered = len(candidates)

        for url, item in candidates:
            try:
                outcome = self.pipeline.ingest(url, source.url, item)
            except (NetworkError, ParseError) as exc:
                LOGGER.warning("Skipping %s: %s", url, exc)
                outcome = Rejected(f"fetch failed: {exc}")
            self._tally(status, url, outcome)
        LOGGER.info(
            "Source %s: %s processed, %s inserted, %s duplicate, %s rejected",
            source.url,
            status.processed,
            status.inserted,
            status.duplicate,
            status.rejected,
        )
        return status

    @staticmethod
    def _tally(status: SourceStatus, url: str, outcome: IngestOutcome) -> None:
        status.processed += 1
        if outcome.status == "inserted":
            status.inserted += 1
            return
        if outcome.status == "duplicate":
            status.duplicate += 1
        else:
            status.rejected += 1
            if getattr(outcome, "low_word_count", False):
                status.low_word_discards += 1
        if len(status.samples) < MAX_SOURCE_SAMPLES:
            status.samples.append({"url": url, "status": outcome.status, "reason": outcome.reason})

    @staticmethod
    def _record(metrics: RunMetrics, status: SourceStatus) -> None:
        metrics.sources_attempted += 1
        metrics.processed += status.processed
        metrics.inserted += status.inserted
        metrics.duplicate += status.duplicate
        metrics.rejected += status.rejected
        metrics.low_word_discards += status.low_word_discards
        if status.error:
            metrics.source_errors += 1
        room = MAX_RUN_SAMPLES - len(metrics.samples)
        if room > 0:
            metrics.samples.extend(dict(sample, source=status.source_url) for sample in status.samples[:room])
        metrics.sources.append(status)

    def _persist_metrics(self, metrics: RunMetrics) -> None:
        payload: Dict = metrics.to_serializable()
        cache_set_json(self.cache, "ingest:metrics:latest", payload, METRICS_TTL)
        cache_set_json(self.cache, f"ingest:metrics:{metrics.run_id}", payload, METRICS_TTL)
