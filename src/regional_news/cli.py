"""
Command line entry point for manual and scheduled ingestion runs.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Sequence

from src.regional_news.classify import build_classifier
from src.regional_news.config import Settings
from src.regional_news.dedup import DedupEngine
from src.regional_news.discovery import FallbackDiscoverer, RobotsChecker
from src.regional_news.errors import StoreUnavailableError
from src.regional_news.extraction import ArticleExtractor
from src.regional_news.feeds import FeedResolver
from src.regional_news.fetching import HttpFetcher
from src.regional_news.gazetteer import canonical_county
from src.regional_news.llm import TextGenerator
from src.regional_news.models import PRIORITY_TIERS, Source
from src.regional_news.orchestrator import IngestOrchestrator
from src.regional_news.pipeline import ArticlePipeline
from src.regional_news.sources import DEFAULT_SOURCES, build_county_search_sources, sources_from_urls
from src.regional_news.stores import LocalBlobStore, SQLiteArticleStore, SQLiteKeyValueStore
from src.regional_news.summarize import build_summarizer

LOGGER = logging.getLogger(__name__)


def load_generator(settings: Settings) -> TextGenerator:
    # torch and transformers are only imported when model mode is requested.
    from src.regional_news.local_model import DEFAULT_MODEL_ID, TransformersTextGenerator

    return TransformersTextGenerator(
        model_id=settings.model_id or DEFAULT_MODEL_ID,
        device_map=settings.model_device,
    )


def build_orchestrator(settings: Settings, generator: TextGenerator | None = None) -> IngestOrchestrator:
    cache = SQLiteKeyValueStore(settings.cache_path)
    store = SQLiteArticleStore(settings.db_path)
    fetcher = HttpFetcher(cache=cache, user_agent=settings.user_agent, timeout=settings.fetch_timeout)
    pipeline = ArticlePipeline(
        store=store,
        extractor=ArticleExtractor(fetcher),
        dedup=DedupEngine(store, cache, similarity_threshold=settings.title_similarity_threshold),
        classifier=build_classifier(generator),
        summarizer=build_summarizer(generator, cache),
        blob_store=LocalBlobStore(settings.blob_dir),
        min_words=settings.min_words,
    )
    return IngestOrchestrator(
        pipeline=pipeline,
        resolver=FeedResolver(fetcher),
        discoverer=FallbackDiscoverer(fetcher, RobotsChecker(fetcher, cache)),
        cache=cache,
        concurrency=settings.concurrency,
    )


def select_sources(
    source_urls: Sequence[str],
    counties: Sequence[str],
    search_priority: str = "high",
) -> List[Source]:
    """Ad-hoc URLs (or the default catalogue) plus publisher search pages per county.

    Raises ValueError for a county missing from the gazetteer.
    """
    sources = sources_from_urls(source_urls) if source_urls else list(DEFAULT_SOURCES)
    names: List[str] = []
    for value in counties:
        county = canonical_county(value)
        if county is None:
            raise ValueError(f"Unknown Kentucky county: {value}")
        if county not in names:
            names.append(county)
    known = {source.url for source in sources}
    for source in build_county_search_sources(names, priority=search_priority):
        if source.url not in known:
            sources.append(source)
            known.add(source.url)
    return sources


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Ingest regional news from publisher feeds.")
    parser.add_argument(
        "--trigger",
        choices=("manual", "scheduled"),
        default="manual",
        help="manual processes the full list in one pass; scheduled rotates through one priority tier.",
    )
    parser.add_argument(
        "--priority",
        choices=PRIORITY_TIERS,
        default="high",
        help="Priority tier for scheduled runs (default: high).",
    )
    parser.add_argument(
        "--include-low-priority",
        action="store_true",
        help="Include low-priority sources in a manual run.",
    )
    parser.add_argument(
        "--limit-per-source",
        type=int,
        default=None,
        help="Maximum items ingested per source (default depends on the trigger).",
    )
    parser.add_argument(
        "--source-url",
        action="append",
        default=[],
        help="Ingest only this source URL (repeatable).",
    )
    parser.add_argument(
        "--county-search",
        action="append",
        default=[],
        metavar="COUNTY",
        help="Also crawl publisher search pages for this county (repeatable).",
    )
    parser.add_argument(
        "--use-model",
        action="store_true",
        help="Augment classification and summaries with the local text generation model.",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file (default: repository root .env).",
    )
    parser.add_argument(
        "--print-metrics",
        action="store_true",
        help="Print the run metrics as JSON when the run finishes.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Python logging level (default: INFO).",
    )
    args = parser.parse_args(argv)
    search_priority = args.priority if args.trigger == "scheduled" else "high"
    try:
        sources = select_sources(args.source_url, args.county_search, search_priority)
    except ValueError as exc:
        parser.error(str(exc))

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stdout,
        force=True,
    )
    settings = Settings.from_env(args.env_file)
    LOGGER.info("Starting %s ingestion (db=%s, concurrency=%s)", args.trigger, settings.db_path, settings.concurrency)

    try:
        generator = load_generator(settings) if args.use_model else None
        orchestrator = build_orchestrator(settings, generator)
        if args.trigger == "scheduled":
            metrics = orchestrator.run_scheduled(
                sources,
                priority=args.priority,
                max_sources=settings.scheduled_sources_per_run,
                limit_per_source=args.limit_per_source or settings.scheduled_limit_per_source,
            )
        else:
            metrics = orchestrator.run_manual(
                sources,
                include_low_priority=args.include_low_priority,
                limit_per_source=args.limit_per_source or settings.manual_limit_per_source,
            )
    except StoreUnavailableError:
        LOGGER.exception("Ingestion aborted: article store unavailable.")
        return 1
    if args.print_metrics:
        print(json.dumps(metrics.to_serializable(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
