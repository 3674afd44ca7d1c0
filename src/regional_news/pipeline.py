"""
Per-item ingestion: dedup, extraction, classification, summarization and the
insert-if-absent write, producing a tagged outcome.
"""

from __future__ import annotations

import logging
from typing import Protocol

from src.regional_news.canonical import build_article_slug, canonicalize_url, count_words, utc_now
from src.regional_news.classify import Classifier
from src.regional_news.dedup import DedupEngine
from src.regional_news.errors import BlockedError, DuplicateError, ShortContentError, StorageConflict
from src.regional_news.extraction import ArticleExtractor, is_short_content_exempt
from src.regional_news.flags import classify_breaking
from src.regional_news.models import (
    ArticleRecord,
    ClassificationResult,
    Duplicate,
    ExtractedArticle,
    FeedItem,
    IngestOutcome,
    Inserted,
    Rejected,
    SummaryResult,
)
from src.regional_news.stores import LocalBlobStore, raw_payload_key
from src.regional_news.summarize import Summarizer

LOGGER = logging.getLogger(__name__)

MIN_ARTICLE_WORDS = 50


class ArticleWriter(Protocol):
    def insert_if_absent(self, record: ArticleRecord) -> int:
        ...

    def find_id_by_hash(self, hash_value: str) -> int | None:
        ...


class ArticlePipeline:
    def __init__(
        self,
        store: ArticleWriter,
        extractor: ArticleExtractor,
        dedup: DedupEngine,
        classifier: Classifier,
        summarizer: Summarizer,
        blob_store: LocalBlobStore | None = None,
        min_words: int = MIN_ARTICLE_WORDS,
    ) -> None:
        self.store = store
        self.extractor = extractor
        self.dedup = dedup
        self.classifier = classifier
        self.summarizer = summarizer
        self.blob_store = blob_store
        self.min_words = min_words

    def ingest(self, url: str, source_url: str, feed_item: FeedItem | None = None) -> IngestOutcome:
        """Ingest one candidate URL.

        NetworkError and ParseError from the fetch propagate so the caller can
        record them against the source; every dedup or content rejection comes
        back as an outcome.
        """
        canonical = canonicalize_url(url)
        if not canonical:
            return Rejected(f"not a web url: {url}")
        try:
            hash_value = self.dedup.check_url(canonical)
        except BlockedError as exc:
            return Rejected(exc.reason, url_hash=exc.url_hash)
        except DuplicateError as exc:
            return Duplicate(exc.reason, url_hash=exc.url_hash, existing_id=exc.existing_id)

        article = self.extractor.extract(url, source_url, feed_item)
        try:
            if article.canonical_url != canonical:
                hash_value = self.dedup.check_url(article.canonical_url)
            self.dedup.check_title(article.title, hash_value)
            self.dedup.check_fingerprint(article.content_text, hash_value)
            self._check_length(article)
        except BlockedError as exc:
            return Rejected(exc.reason, url_hash=exc.url_hash)
        except DuplicateError as exc:
            return Duplicate(exc.reason, url_hash=exc.url_hash, existing_id=exc.existing_id)
        except ShortContentError as exc:
            return Rejected(exc.reason, url_hash=hash_value, low_word_count=True)

        classification = self.classifier.classify(article.title, article.classification_lead)
        summary = self.summarizer.summarize(article.title, article.content_text, article.published_at)
        breaking = classify_breaking(article.title, article.content_text, utc_now())
        record = ArticleRecord(
            url_hash=hash_value,
            slug=build_article_slug(article.title, hash_value),
            article=article,
            classification=classification,
            summary=summary,
            raw_key=self._archive(hash_value, article, classification, summary),
            breaking=breaking,
        )
        try:
            article_id = self.store.insert_if_absent(record)
        except StorageConflict as exc:
            LOGGER.info("Lost insert race for %s; treating as duplicate", article.canonical_url)
            return Duplicate(
                "storage conflict: url hash already exists",
                url_hash=exc.url_hash,
                existing_id=self.store.find_id_by_hash(exc.url_hash),
            )
        self.dedup.remember_fingerprint(article.content_text, article_id)
        LOGGER.info(
            "Inserted article %s [%s] %s",
            article_id,
            classification.category.value,
            article.title,
        )
        return Inserted(article_id, hash_value, classification.category.value)

    def _check_length(self, article: ExtractedArticle) -> None:
        words = count_words(article.content_text)
        if words >= self.min_words:
            return
        exempt = is_short_content_exempt(article.canonical_url) or (not article.is_html and words > 0)
        if not exempt:
            raise ShortContentError(words)

    def _archive(
        self,
        hash_value: str,
        article: ExtractedArticle,
        classification: ClassificationResult,
        summary: SummaryResult,
    ) -> str | None:
        if self.blob_store is None:
            return None
        archived_at = utc_now()
        key = raw_payload_key(summary.source_content_hash, archived_at)
        payload = {
            "url_hash": hash_value,
            "content_hash": summary.source_content_hash,
            "source_url": article.source_url,
            "canonical_url": article.canonical_url,
            "title": article.title,
            "published_at": article.published_at.isoformat(),
            "content_text": article.content_text,
            "classification_lead": article.classification_lead,
            "classification": classification.to_serializable(),
            "archived_at": archived_at.isoformat(),
        }
        return key if self.blob_store.put_json(key, payload) else None
