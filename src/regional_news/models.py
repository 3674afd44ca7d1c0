"""
Data model shared across the ingestion stages.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, List, Union


class Category(str, Enum):
    SPORTS = "sports"
    WEATHER = "weather"
    SCHOOLS = "schools"
    OBITUARIES = "obituaries"
    TODAY = "today"
    NATIONAL = "national"

    @classmethod
    def parse(cls, value: Any) -> "Category | None":
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


PRIORITY_TIERS = ("high", "normal", "low")


@dataclass(frozen=True)
class Source:
    """A publisher root URL plus its scheduling tier."""

    url: str
    name: str = ""
    priority: str = "normal"
    category: str = "news"


@dataclass
class FeedItem:
    title: str
    link: str
    published_at: datetime | None = None
    description: str | None = None


@dataclass
class PaywallResult:
    is_paywalled: bool = False
    confidence: int = 0
    signals: List[str] = field(default_factory=list)


@dataclass
class BreakingResult:
    is_breaking: bool = False
    alert_level: str | None = None
    sentiment: str = "neutral"
    expires_at: datetime | None = None
    signals: List[str] = field(default_factory=list)


@dataclass
class ExtractedArticle:
    canonical_url: str
    source_url: str
    title: str
    published_at: datetime
    content_text: str
    content_html: str
    classification_lead: str
    author: str | None = None
    image_url: str | None = None
    is_html: bool = True
    paywall: PaywallResult = field(default_factory=PaywallResult)


@dataclass
class ClassificationResult:
    category: Category
    is_state: bool
    is_national: bool
    regions: List[str] = field(default_factory=list)
    locality: str | None = None
    primary_region: str | None = None

    def __post_init__(self) -> None:
        if self.primary_region is None and self.regions:
            self.primary_region = self.regions[0]

    def to_serializable(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["category"] = self.category.value
        return payload


@dataclass
class SummaryResult:
    summary: str
    short_description: str
    word_count: int
    source_content_hash: str
    generated: bool = False


@dataclass
class ArticleRecord:
    url_hash: str
    slug: str
    article: ExtractedArticle
    classification: ClassificationResult
    summary: SummaryResult
    raw_key: str | None = None
    breaking: BreakingResult = field(default_factory=BreakingResult)

    def to_row(self) -> dict[str, Any]:
        article = self.article
        classification = self.classification
        return {
            "url_hash": self.url_hash,
            "slug": self.slug,
            "canonical_url": article.canonical_url,
            "source_url": article.source_url,
            "title": article.title,
            "author": article.author,
            "published_at": article.published_at.isoformat(),
            "image_url": article.image_url,
            "content_text": article.content_text,
            "content_html": article.content_html,
            "category": classification.category.value,
            "is_state": int(classification.is_state),
            "is_national": int(classification.is_national),
            "primary_region": classification.primary_region,
            "regions": ",".join(classification.regions),
            "locality": classification.locality,
            "summary": self.summary.summary,
            "short_description": self.summary.short_description,
            "summary_word_count": self.summary.word_count,
            "source_content_hash": self.summary.source_content_hash,
            "raw_key": self.raw_key,
            "is_paywalled": int(article.paywall.is_paywalled),
            "paywall_confidence": article.paywall.confidence,
            "is_breaking": int(self.breaking.is_breaking),
            "alert_level": self.breaking.alert_level,
            "sentiment": self.breaking.sentiment,
            "breaking_expires_at": self.breaking.expires_at.isoformat() if self.breaking.expires_at else None,
        }


@dataclass(frozen=True)
class Inserted:
    article_id: int
    url_hash: str
    category: str
    status: ClassVar[str] = "inserted"


@dataclass(frozen=True)
class Duplicate:
    reason: str
    url_hash: str | None = None
    existing_id: int | None = None
    status: ClassVar[str] = "duplicate"


@dataclass(frozen=True)
class Rejected:
    reason: str
    url_hash: str | None = None
    low_word_count: bool = False
    status: ClassVar[str] = "rejected"


IngestOutcome = Union[Inserted, Duplicate, Rejected]


@dataclass
class SourceStatus:
    source_url: str
    feed_url: str | None = None
    used_fallback: bool = False
    discovered: int = 0
    processed: int = 0
    inserted: int = 0
    duplicate: int = 0
    rejected: int = 0
    low_word_discards: int = 0
    error: str | None = None
    samples: List[dict[str, str]] = field(default_factory=list)

    def to_serializable(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class RunMetrics:
    run_id: str
    trigger: str
    started_at: datetime
    finished_at: datetime | None = None
    sources_attempted: int = 0
    processed: int = 0
    inserted: int = 0
    duplicate: int = 0
    rejected: int = 0
    low_word_discards: int = 0
    source_errors: int = 0
    samples: List[dict[str, str]] = field(default_factory=list)
    sources: List[SourceStatus] = field(default_factory=list)

    def to_serializable(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "trigger": self.trigger,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "sources_attempted": self.sources_attempted,
            "processed": self.processed,
            "inserted": self.inserted,
            "duplicate": self.duplicate,
            "rejected": self.rejected,
            "low_word_discards": self.low_word_discards,
            "source_errors": self.source_errors,
            "samples": list(self.samples),
            "sources": [status.to_serializable() for status in self.sources],
        }
