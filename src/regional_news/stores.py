"""
Storage adapters: key-value cache with TTLs, the relational article store and a
best-effort blob archive. Every adapter is injected into the pipeline so tests can
swap in the in-memory variants.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol

from src.regional_news.errors import StorageConflict, StoreUnavailableError
from src.regional_news.models import ArticleRecord

LOGGER = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class MemoryKeyValueStore:
    """Dict-backed store with lazy expiry."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self.clock = clock
        self._data: Dict[str, tuple[str, float | None]] = {}
        self.lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self.lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and expires_at <= self.clock():
                del self._data[key]
                return None
            return value

    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        expires_at = self.clock() + ttl_seconds if ttl_seconds else None
        with self.lock:
            self._data[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        with self.lock:
            self._data.pop(key, None)


class SQLiteKeyValueStore:
    """Persistent key-value cache; expired rows are ignored on read and purged lazily."""

    def __init__(self, db_path: Path, clock: Callable[[], float] = time.time) -> None:
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.clock = clock
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS kv_cache (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                expires_at REAL,
                updated_at TEXT
            )
            """
        )
        self.conn.commit()
        self.lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self.lock:
            row = self.conn.execute(
                "SELECT value, expires_at FROM kv_cache WHERE key = ?",
                (key,),
            ).fetchone()
            if not row:
                return None
            value, expires_at = row
            if expires_at is not None and expires_at <= self.clock():
                self.conn.execute("DELETE FROM kv_cache WHERE key = ?", (key,))
                self.conn.commit()
                return None
        return value

    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        expires_at = self.clock() + ttl_seconds if ttl_seconds else None
        with self.lock:
            self.conn.execute(
                "INSERT OR REPLACE INTO kv_cache (key, value, expires_at, updated_at) VALUES (?, ?, ?, ?)",
                (key, value, expires_at, datetime.now(timezone.utc).isoformat()),
            )
            self.conn.commit()

    def delete(self, key: str) -> None:
        with self.lock:
            self.conn.execute("DELETE FROM kv_cache WHERE key = ?", (key,))
            self.conn.commit()


def cache_get(store: KeyValueStore | None, key: str) -> Optional[str]:
    """Read from a cache, treating any backend failure as a miss."""
    if store is None:
        return None
    try:
        return store.get(key)
    except Exception:  # noqa: BLE001
        LOGGER.warning("Cache read failed for %s", key, exc_info=True)
        return None


def cache_set(store: KeyValueStore | None, key: str, value: str, ttl_seconds: int | None = None) -> bool:
    if store is None:
        return False
    try:
        store.set(key, value, ttl_seconds)
        return True
    except Exception:  # noqa: BLE001
        LOGGER.warning("Cache write failed for %s", key, exc_info=True)
        return False


def cache_get_json(store: KeyValueStore | None, key: str) -> Any:
    raw = cache_get(store, key)
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        LOGGER.debug("Discarding undecodable cache entry %s", key)
        return None


def cache_set_json(store: KeyValueStore | None, key: str, value: Any, ttl_seconds: int | None = None) -> bool:
    return cache_set(store, key, json.dumps(value, default=str), ttl_seconds)


ARTICLE_COLUMNS = (
    "url_hash",
    "slug",
    "canonical_url",
    "source_url",
    "title",
    "author",
    "published_at",
    "image_url",
    "content_text",
    "content_html",
    "category",
    "is_state",
    "is_national",
    "primary_region",
    "regions",
    "locality",
    "summary",
    "short_description",
    "summary_word_count",
    "source_content_hash",
    "raw_key",
    "is_paywalled",
    "paywall_confidence",
    "is_breaking",
    "alert_level",
    "sentiment",
    "breaking_expires_at",
)

# Added after the first schema; older databases gain them on open.
FLAG_COLUMNS = (
    ("is_paywalled", "INTEGER NOT NULL DEFAULT 0"),
    ("paywall_confidence", "INTEGER NOT NULL DEFAULT 0"),
    ("is_breaking", "INTEGER NOT NULL DEFAULT 0"),
    ("alert_level", "TEXT"),
    ("sentiment", "TEXT"),
    ("breaking_expires_at", "TEXT"),
)


class SQLiteArticleStore:
    """Article records keyed by a unique URL hash, plus the admin block-list."""

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = db_path
        if isinstance(db_path, Path):
            db_path.parent.mkdir(parents=True, exist_ok=True)
        self.lock = threading.Lock()
        try:
            self.conn = sqlite3.connect(str(db_path), check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            self._init_schema()
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"Cannot open article store at {db_path}: {exc}") from exc

    def _init_schema(self) -> None:
        self.conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS articles (
                id INTEGER PRIMARY KEY,
                url_hash TEXT NOT NULL UNIQUE,
                slug TEXT,
                canonical_url TEXT NOT NULL,
                source_url TEXT,
                title TEXT,
                author TEXT,
                published_at TEXT,
                image_url TEXT,
                content_text TEXT,
                content_html TEXT,
                category TEXT,
                is_state INTEGER,
                is_national INTEGER,
                primary_region TEXT,
                regions TEXT,
                locality TEXT,
                summary TEXT,
                short_description TEXT,
                summary_word_count INTEGER,
                source_content_hash TEXT,
                raw_key TEXT,
                created_at TEXT
            );
            CREATE TABLE IF NOT EXISTS blocked_urls (
                url_hash TEXT PRIMARY KEY,
                reason TEXT,
                created_at TEXT
            );
            CREATE INDEX IF NOT EXISTS idx_articles_created ON articles(created_at);
            CREATE INDEX IF NOT EXISTS idx_articles_published ON articles(published_at);
            CREATE INDEX IF NOT EXISTS idx_articles_category ON articles(category);
            """
        )
        self.conn.commit()
        for column, ddl in FLAG_COLUMNS:
            self._ensure_column("articles", column, ddl)

    def _ensure_column(self, table: str, column: str, ddl: str) -> None:
        cursor = self.conn.execute(f"PRAGMA table_info({table})")
        existing = {row[1] for row in cursor.fetchall()}
        if column not in existing:
            self.conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}")
            self.conn.commit()

    def _fetchone(self, sql: str, params: tuple[Any, ...]) -> Optional[sqlite3.Row]:
        try:
            with self.lock:
                return self.conn.execute(sql, params).fetchone()
        except sqlite3.Error as exc:
            raise StoreUnavailableError(str(exc)) from exc

    def find_id_by_hash(self, hash_value: str) -> Optional[int]:
        row = self._fetchone("SELECT id FROM articles WHERE url_hash = ?", (hash_value,))
        return int(row["id"]) if row else None

    def is_blocked(self, hash_value: str) -> bool:
        return self._fetchone("SELECT 1 FROM blocked_urls WHERE url_hash = ?", (hash_value,)) is not None

    def block_url_hash(self, hash_value: str, reason: str = "") -> None:
        try:
            with self.lock:
                self.conn.execute(
                    "INSERT OR REPLACE INTO blocked_urls (url_hash, reason, created_at) VALUES (?, ?, ?)",
                    (hash_value, reason, datetime.now(timezone.utc).isoformat()),
                )
                self.conn.commit()
        except sqlite3.Error as exc:
            raise StoreUnavailableError(str(exc)) from exc

    def recent_titles(self, limit: int = 300) -> List[tuple[int, str]]:
        try:
            with self.lock:
                rows = self.conn.execute(
                    "SELECT id, title FROM articles ORDER BY id DESC LIMIT ?",
                    (limit,),
                ).fetchall()
        except sqlite3.Error as exc:
            raise StoreUnavailableError(str(exc)) from exc
        return [(int(row["id"]), row["title"] or "") for row in rows]

    def insert_if_absent(self, record: ArticleRecord) -> int:
        """Insert ``record``; raise StorageConflict when its URL hash already exists."""
        row = record.to_row()
        row["created_at"] = datetime.now(timezone.utc).isoformat()
        columns = list(ARTICLE_COLUMNS) + ["created_at"]
        placeholders = ", ".join("?" for _ in columns)
        sql = f"INSERT INTO articles ({', '.join(columns)}) VALUES ({placeholders})"
        try:
            with self.lock:
                cursor = self.conn.execute(sql, tuple(row[column] for column in columns))
                self.conn.commit()
                return int(cursor.lastrowid)
        except sqlite3.IntegrityError as exc:
            raise StorageConflict(record.url_hash) from exc
        except sqlite3.Error as exc:
            raise StoreUnavailableError(str(exc)) from exc

    def recent_articles(
        self,
        category: str | None = None,
        region: str | None = None,
        limit: int = 50,
        breaking_only: bool = False,
        now: datetime | None = None,
    ) -> List[dict[str, Any]]:
        """Newest first; ``breaking_only`` keeps articles whose breaking window is still open."""
        clauses: list[str] = []
        params: list[Any] = []
        if breaking_only:
            clauses.append("is_breaking = 1 AND breaking_expires_at > ?")
            params.append((now or datetime.now(timezone.utc)).isoformat())
        if category:
            clauses.append("category = ?")
            params.append(category)
        if region:
            clauses.append("(',' || regions || ',') LIKE ?")
            params.append(f"%,{region},%")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(limit)
        try:
            with self.lock:
                rows = self.conn.execute(
                    f"SELECT * FROM articles {where} ORDER BY published_at DESC, id DESC LIMIT ?",
                    tuple(params),
                ).fetchall()
        except sqlite3.Error as exc:
            raise StoreUnavailableError(str(exc)) from exc
        results = []
        for row in rows:
            item = dict(row)
            item["regions"] = [value for value in (item.get("regions") or "").split(",") if value]
            results.append(item)
        return results

    def close(self) -> None:
        with self.lock:
            self.conn.close()


def raw_payload_key(content_hash_value: str, when: datetime) -> str:
    """Archive key namespaced by day and by the hash of the extracted text."""
    return f"raw/{when:%Y/%m/%d}/{content_hash_value}.json"


class LocalBlobStore:
    """Filesystem archive for raw ingestion payloads. Writes never raise."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def put_json(self, key: str, payload: dict[str, Any]) -> bool:
        target = self.root / key
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(json.dumps(payload, ensure_ascii=False, default=str), encoding="utf-8")
        except Exception:  # noqa: BLE001
            LOGGER.warning("Failed to archive raw payload to %s", target, exc_info=True)
            return False
        return True

    def get_json(self, key: str) -> Optional[dict[str, Any]]:
        target = self.root / key
        if not target.exists():
            return None
        return json.loads(target.read_text(encoding="utf-8"))
