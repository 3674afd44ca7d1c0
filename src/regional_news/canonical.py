"""
URL and text normalization primitives shared by every ingestion stage.
"""

from __future__ import annotations

import hashlib
import html
import logging
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from urllib.parse import parse_qsl, unquote, urlencode, urlsplit, urlunsplit

LOGGER = logging.getLogger(__name__)

TRACKING_PARAM_PREFIXES = ("utm_",)
TRACKING_PARAMS = frozenset(
    {
        "fbclid",
        "gclid",
        "dclid",
        "msclkid",
        "mc_cid",
        "mc_eid",
        "igshid",
        "ref",
        "ref_src",
        "cmpid",
        "taid",
        "_ga",
        "outputtype",
    }
)

SLUG_MAX_LENGTH = 60


def canonicalize_url(raw_url: str | None) -> str | None:
    """Return the canonical HTTPS form of ``raw_url`` or None when it is not a web URL.

    Canonical form: https scheme, lowercase host without ``www.``, no default port,
    no tracking parameters, no fragment, no trailing slash.
    """
    if not raw_url:
        return None
    value = raw_url.strip()
    if value.startswith("//"):
        value = f"https:{value}"
    elif "://" not in value and re.match(r"^[\w.-]+\.[a-z]{2,}(/|$)", value, re.IGNORECASE):
        value = f"https://{value}"
    parts = urlsplit(value)
    if parts.scheme.lower() not in {"http", "https"} or not parts.hostname:
        return None

    host = parts.hostname.lower().rstrip(".")
    if host.startswith("www."):
        host = host[4:]
    port = parts.port
    netloc = host if port in (None, 80, 443) else f"{host}:{port}"

    path = re.sub(r"/{2,}", "/", parts.path or "")
    path = path.rstrip("/")

    query_pairs = [
        (key, val)
        for key, val in parse_qsl(parts.query, keep_blank_values=True)
        if not _is_tracking_param(key)
    ]
    query = urlencode(query_pairs, doseq=True)
    return urlunsplit(("https", netloc, path, query, ""))


def _is_tracking_param(key: str) -> bool:
    lowered = key.lower()
    return lowered in TRACKING_PARAMS or lowered.startswith(TRACKING_PARAM_PREFIXES)


def url_hash(canonical_url: str) -> str:
    """Deterministic dedup key for a canonical URL."""
    return hashlib.sha256(canonical_url.encode("utf-8")).hexdigest()


def content_hash(text: str) -> str:
    return hashlib.sha256((text or "").encode("utf-8")).hexdigest()


def decode_entities(value: str | None) -> str:
    if not value:
        return ""
    # Double-escaped feeds ("&amp;amp;") need two passes.
    return html.unescape(html.unescape(value))


def normalize_whitespace(value: str | None) -> str:
    if not value:
        return ""
    return re.sub(r"\s+", " ", value).strip()


def count_words(text: str | None) -> int:
    if not text:
        return 0
    return len(text.split())


def slugify(value: str | None, max_length: int = SLUG_MAX_LENGTH) -> str:
    cleaned = decode_entities(value).lower()
    cleaned = re.sub(r"['’]", "", cleaned)
    cleaned = re.sub(r"[^a-z0-9]+", "-", cleaned).strip("-")
    if len(cleaned) > max_length:
        cleaned = cleaned[:max_length].rstrip("-")
    return cleaned


def build_article_slug(title: str, hash_value: str) -> str:
    base = slugify(title) or "article"
    return f"{base}-{hash_value[:8]}"


def title_from_url(url: str) -> str:
    """Derive a readable title from the last path segment of ``url``."""
    path = urlsplit(url).path.rstrip("/")
    segment = unquote(path.rsplit("/", 1)[-1]) if path else ""
    segment = re.sub(r"\.(s?html?|php|aspx?)$", "", segment, flags=re.IGNORECASE)
    words = [word for word in re.split(r"[-_+]+", segment) if word]
    # Trailing numeric ids such as "story-title-123456" add nothing.
    while words and words[-1].isdigit() and len(words) > 1:
        words.pop()
    if not words:
        return urlsplit(url).hostname or url
    return " ".join(word.capitalize() for word in words)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(raw: str | None) -> datetime | None:
    """Parse RFC 822 or ISO-8601 timestamps into aware UTC datetimes."""
    if not raw:
        return None
    value = raw.strip()
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        try:
            parsed = parsedate_to_datetime(value)
        except (TypeError, ValueError, IndexError):
            LOGGER.debug("Unable to parse date %s", raw, exc_info=True)
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
