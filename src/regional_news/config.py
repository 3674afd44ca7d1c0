"""
Runtime settings read from the environment (optionally seeded from a .env file).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from src.regional_news.dedup import TITLE_SIMILARITY_THRESHOLD
from src.regional_news.fetching import DEFAULT_TIMEOUT, DEFAULT_USER_AGENT
from src.regional_news.orchestrator import (
    INGEST_CONCURRENCY,
    MANUAL_LIMIT_PER_SOURCE,
    SCHEDULED_LIMIT_PER_SOURCE,
    SCHEDULED_SOURCES_PER_RUN,
)
from src.regional_news.pipeline import MIN_ARTICLE_WORDS

LOGGER = logging.getLogger(__name__)

REPO_ROOT = Path(__file__).resolve().parents[2]


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        LOGGER.warning("Ignoring non-integer %s=%r", name, raw)
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        LOGGER.warning("Ignoring non-numeric %s=%r", name, raw)
        return default


@dataclass(frozen=True)
class Settings:
    db_path: Path = REPO_ROOT / "data" / "articles.sqlite3"
    cache_path: Path = REPO_ROOT / "data" / "cache.sqlite3"
    blob_dir: Path = REPO_ROOT / "data" / "raw"
    user_agent: str = DEFAULT_USER_AGENT
    fetch_timeout: int = DEFAULT_TIMEOUT
    concurrency: int = INGEST_CONCURRENCY
    scheduled_limit_per_source: int = SCHEDULED_LIMIT_PER_SOURCE
    scheduled_sources_per_run: int = SCHEDULED_SOURCES_PER_RUN
    manual_limit_per_source: int = MANUAL_LIMIT_PER_SOURCE
    title_similarity_threshold: float = TITLE_SIMILARITY_THRESHOLD
    min_words: int = MIN_ARTICLE_WORDS
    model_id: str | None = None
    model_device: str = "auto"

    @classmethod
    def from_env(cls, env_file: Path | None = None) -> "Settings":
        dotenv_path = env_file or REPO_ROOT / ".env"
        if load_dotenv(dotenv_path=dotenv_path):
            LOGGER.debug("Loaded environment variables from %s", dotenv_path)
        defaults = cls()
        return cls(
            db_path=Path(os.getenv("INGEST_DB_PATH") or defaults.db_path),
            cache_path=Path(os.getenv("INGEST_CACHE_PATH") or defaults.cache_path),
            blob_dir=Path(os.getenv("INGEST_BLOB_DIR") or defaults.blob_dir),
            user_agent=os.getenv("INGEST_USER_AGENT") or defaults.user_agent,
            fetch_timeout=_env_int("INGEST_FETCH_TIMEOUT", defaults.fetch_timeout),
            concurrency=_env_int("INGEST_CONCURRENCY", defaults.concurrency),
            scheduled_limit_per_source=_env_int(
                "INGEST_SCHEDULED_LIMIT_PER_SOURCE", defaults.scheduled_limit_per_source
            ),
            scheduled_sources_per_run=_env_int(
                "INGEST_SCHEDULED_SOURCES_PER_RUN", defaults.scheduled_sources_per_run
            ),
            manual_limit_per_source=_env_int("INGEST_MANUAL_LIMIT_PER_SOURCE", defaults.manual_limit_per_source),
            title_similarity_threshold=_env_float(
                "INGEST_TITLE_SIMILARITY_THRESHOLD", defaults.title_similarity_threshold
            ),
            min_words=_env_int("INGEST_MIN_WORDS", defaults.min_words),
            model_id=os.getenv("INGEST_MODEL_ID") or None,
            model_device=os.getenv("INGEST_MODEL_DEVICE") or defaults.model_device,
        )
