from pathlib import Path

import pytest

from src.regional_news.cli import build_orchestrator, main, select_sources
from src.regional_news.config import Settings
from src.regional_news.sources import (
    DEFAULT_SOURCES,
    build_county_search_sources,
    sources_for_tier,
    sources_from_urls,
)

ENV_NAMES = (
    "INGEST_DB_PATH",
    "INGEST_CACHE_PATH",
    "INGEST_BLOB_DIR",
    "INGEST_CONCURRENCY",
    "INGEST_TITLE_SIMILARITY_THRESHOLD",
    "INGEST_MIN_WORDS",
    "INGEST_MODEL_ID",
)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_settings_read_environment(clean_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
    clean_env.setenv("INGEST_DB_PATH", str(tmp_path / "articles.db"))
    clean_env.setenv("INGEST_CONCURRENCY", "3")
    clean_env.setenv("INGEST_TITLE_SIMILARITY_THRESHOLD", "0.9")
    clean_env.setenv("INGEST_MIN_WORDS", "not-a-number")

    settings = Settings.from_env(tmp_path / "missing.env")

    assert settings.db_path == tmp_path / "articles.db"
    assert settings.concurrency == 3
    assert settings.title_similarity_threshold == 0.9
    assert settings.min_words == 50
    assert settings.model_id is None


def test_build_orchestrator_wires_local_stores(clean_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
    settings = Settings(
        db_path=tmp_path / "db" / "articles.db",
        cache_path=tmp_path / "db" / "cache.db",
        blob_dir=tmp_path / "raw",
        concurrency=2,
    )

    orchestrator = build_orchestrator(settings)

    assert orchestrator.concurrency == 2
    assert orchestrator.pipeline.dedup.similarity_threshold == settings.title_similarity_threshold
    assert (tmp_path / "db" / "articles.db").exists()


def test_source_catalogue_helpers() -> None:
    tiers = {tier: sources_for_tier(DEFAULT_SOURCES, tier) for tier in ("high", "normal", "low")}
    assert sum(len(sources) for sources in tiers.values()) == len(DEFAULT_SOURCES)
    assert all(source.priority == "high" for source in tiers["high"])
    with pytest.raises(ValueError):
        sources_for_tier(DEFAULT_SOURCES, "urgent")

    custom = sources_from_urls([" https://example.com ", ""])
    assert [(source.url, source.priority) for source in custom] == [("https://example.com", "high")]

    search = build_county_search_sources(["Laurel"])
    assert [source.url for source in search] == [
        "https://www.kentucky.com/search/?q=Laurel+County",
        "https://www.wymt.com/search/?query=Laurel+County",
    ]
    assert all(source.priority == "low" for source in search)


def test_county_search_sources_join_the_run() -> None:
    sources = select_sources([], ["laurel county", "Laurel", "Perry"])

    assert sources[: len(DEFAULT_SOURCES)] == list(DEFAULT_SOURCES)
    searches = sources[len(DEFAULT_SOURCES) :]
    assert [source.url for source in searches] == [
        "https://www.kentucky.com/search/?q=Laurel+County",
        "https://www.wymt.com/search/?query=Laurel+County",
        "https://www.kentucky.com/search/?q=Perry+County",
        "https://www.wymt.com/search/?query=Perry+County",
    ]
    assert all(source.priority == "high" for source in searches)

    only_custom = select_sources(["https://example.com"], ["Pike"], search_priority="low")
    assert [source.priority for source in only_custom] == ["high", "low", "low"]


def test_unknown_county_is_a_usage_error() -> None:
    with pytest.raises(ValueError):
        select_sources([], ["Gotham"])
    with pytest.raises(SystemExit) as excinfo:
        main(["--county-search", "Gotham"])
    assert excinfo.value.code == 2
