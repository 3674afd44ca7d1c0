"""
Error taxonomy for the ingestion pipeline.

Only ``StoreUnavailableError`` is meant to escape a run; everything else is
mapped to a per-item outcome or a per-source status by the caller.
"""

from __future__ import annotations


class IngestError(Exception):
    """Base class for pipeline errors."""


class NetworkError(IngestError):
    """Fetch failed or timed out. Not retried inline; the next cycle picks it up."""

    def __init__(self, url: str, message: str, status: int | None = None) -> None:
        super().__init__(f"{message} ({url})")
        self.url = url
        self.status = status


class ParseError(IngestError):
    """Feed or page could not be parsed."""


class ValidationError(IngestError):
    """Generated summary failed a validation gate."""


class DuplicateError(IngestError):
    def __init__(self, reason: str, url_hash: str | None = None, existing_id: int | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.url_hash = url_hash
        self.existing_id = existing_id


class BlockedError(IngestError):
    def __init__(self, url_hash: str) -> None:
        super().__init__("blocked by admin")
        self.reason = "blocked by admin"
        self.url_hash = url_hash


class ShortContentError(IngestError):
    def __init__(self, word_count: int) -> None:
        self.word_count = word_count
        self.reason = f"content too short ({word_count} words)"
        super().__init__(self.reason)


class StorageConflict(IngestError):
    """Unique constraint on the URL hash rejected an insert."""

    def __init__(self, url_hash: str) -> None:
        super().__init__(f"url hash already stored: {url_hash}")
        self.url_hash = url_hash


class StoreUnavailableError(IngestError):
    """Relational store cannot be reached; fatal for the whole run."""
