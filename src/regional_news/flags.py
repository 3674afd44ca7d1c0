"""
Cheap per-article flags computed at ingestion time: paywall detection from page
signals and breaking-news alert levels from headline wording.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta
from typing import List, Pattern, Sequence
from urllib.parse import urlsplit

from src.regional_news.canonical import count_words
from src.regional_news.models import BreakingResult, PaywallResult

LOGGER = logging.getLogger(__name__)

PAYWALL_THRESHOLD = 60
SHORT_BODY_WORDS = 80
BREAKING_WINDOW = timedelta(hours=4)
BREAKING_BODY_CHARS = 500

KNOWN_PAYWALL_DOMAINS = frozenset(
    {
        "nytimes.com",
        "wsj.com",
        "washingtonpost.com",
        "ft.com",
        "bloomberg.com",
        "theatlantic.com",
        "courier-journal.com",
        "kentucky.com",
        "bgdailynews.com",
        "paducahsun.com",
        "messenger-inquirer.com",
        "murrayledger.com",
        "hendersongleaner.com",
        "kentuckynewera.com",
        "somerset-kentucky.com",
        "timestribune.com",
        "richmondregister.com",
        "amnews.com",
    }
)
FREE_DOMAINS = frozenset(
    {
        "kentuckylantern.com",
        "kycir.org",
        "ket.org",
        "lpm.org",
        "wfpl.org",
        "wymt.com",
        "wkyt.com",
        "lex18.com",
        "wdrb.com",
        "whas11.com",
        "wlky.com",
        "weku.org",
        "wuky.org",
        "apnews.com",
    }
)

PAYWALL_MARKUP_SIGNALS = (
    "paywall",
    "subscriber-only",
    "subscription-required",
    "premium-content",
    "locked-content",
    "content-gate",
    "piano-",
    "tinypass",
    "metered-paywall",
    "access-locked",
)
PAYWALL_TEXT_SIGNALS = (
    "subscribe to continue reading",
    "subscribe to read the full",
    "create a free account to read",
    "sign in to continue",
    "this content is for subscribers",
    "for subscribers only",
    "to continue reading, please",
    "already a subscriber? sign in",
    "unlock this article",
    "you've used all your free",
    "your free articles have been used",
)
_NOT_FREE_RE = re.compile(r'"isAccessibleForFree"\s*:\s*"?false"?', re.IGNORECASE)


def _host(url: str) -> str:
    host = (urlsplit(url).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def detect_paywall(html: str, url: str, body_text: str = "") -> PaywallResult:
    """Score paywall signals from 0 to 100; 60 or more marks the article paywalled."""
    host = _host(url)
    if host in FREE_DOMAINS:
        return PaywallResult(False, 0, ["known-free-domain"])
    signals: List[str] = []
    score = 0
    if host in KNOWN_PAYWALL_DOMAINS:
        score += 40
        signals.append("known-paywall-domain")
    if _NOT_FREE_RE.search(html or ""):
        score += 35
        signals.append("json-ld:not-free")

    html_lower = (html or "").lower()
    markup_hits = [signal for signal in PAYWALL_MARKUP_SIGNALS if signal in html_lower]
    if markup_hits:
        score += min(len(markup_hits) * 10, 30)
        signals.extend(f"markup:{signal}" for signal in markup_hits)

    text_lower = (body_text or "").lower()
    text_hits = [phrase for phrase in PAYWALL_TEXT_SIGNALS if phrase in text_lower or phrase in html_lower]
    if text_hits:
        score += min(len(text_hits) * 15, 40)
        signals.extend(f"text:{phrase}" for phrase in text_hits)

    words = count_words(body_text)
    if 0 < words < SHORT_BODY_WORDS:
        score += 15
        signals.append(f"short-body:{words}")

    confidence = min(score, 100)
    if confidence >= PAYWALL_THRESHOLD:
        LOGGER.debug("Paywall detected for %s (%s): %s", url, confidence, ", ".join(signals))
    return PaywallResult(confidence >= PAYWALL_THRESHOLD, confidence, signals)


def _compile(patterns: Sequence[str]) -> List[Pattern[str]]:
    return [re.compile(pattern, re.IGNORECASE) for pattern in patterns]


def _word_pattern(words: Sequence[str]) -> Pattern[str]:
    return re.compile(r"\b(?:" + "|".join(re.escape(word) for word in words) + r")\b", re.IGNORECASE)


EMERGENCY_PATTERNS = _compile(
    [
        r"\bemergency\b",
        r"\bevacuat(?:e|ion|ions)\b",
        r"\bshelter[ -]in[ -]place\b",
        r"\b(?:amber|silver|blue) alert\b",
        r"\bmissing (?:child|person|adult)\b",
        r"\bactive shooter\b",
        r"\bbomb threat\b",
        r"\bhazmat\b",
        r"\bgas leak\b",
    ]
)
# Headline only; "breaking" in a body is usually boilerplate.
BREAKING_TITLE_PATTERNS = _compile([r"\bbreaking\b", r"\burgent\b", r"\balert\s*:"])
DEVELOPING_PATTERNS = _compile(
    [
        r"\bdeveloping\b",
        r"\bupdate\s*:",
        r"\bwatch\s*:",
        r"\bjust in\b",
    ]
)
OFFICIAL_ALERT_SOURCES = _word_pattern(
    [
        "national weather service",
        "nws",
        "kentucky emergency management",
        "kyem",
        "kentucky state police",
        "ksp",
        "fema",
    ]
)
NEGATIVE_WORDS = _word_pattern(
    [
        "killed", "died", "death", "dead", "fatal", "crash", "arrest", "arrested",
        "charged", "indicted", "sentenced", "fire", "explosion", "flood", "tornado",
        "shooting", "stabbing", "homicide", "murder", "overdose", "injured",
        "layoffs", "closure", "outbreak", "spill", "evacuation",
    ]
)
POSITIVE_WORDS = _word_pattern(
    [
        "awarded", "honored", "celebrated", "achievement", "won", "grant",
        "funding", "expansion", "hired", "opened", "launched", "rescued",
        "recovered", "milestone", "graduation", "scholarship", "donation",
        "volunteers", "partnership",
    ]
)


def classify_sentiment(text: str) -> str:
    negative = len(NEGATIVE_WORDS.findall(text))
    positive = len(POSITIVE_WORDS.findall(text))
    if negative > positive + 1:
        return "negative"
    if positive > negative + 1:
        return "positive"
    return "neutral"


def classify_breaking(title: str, body: str, now: datetime) -> BreakingResult:
    """Alert level in priority order emergency > breaking > developing.

    Emergency, breaking and official-source hits flag the article as breaking
    for four hours; a developing hit only sets the alert level.
    """
    combined = f"{title} {(body or '')[:BREAKING_BODY_CHARS]}"
    alert_level: str | None = None
    is_breaking = False
    signals: List[str] = []

    for pattern in EMERGENCY_PATTERNS:
        match = pattern.search(combined)
        if match:
            alert_level, is_breaking = "emergency", True
            signals.append(f"emergency:{match.group(0).lower()}")
            break
    if alert_level is None:
        for pattern in BREAKING_TITLE_PATTERNS:
            match = pattern.search(title)
            if match:
                alert_level, is_breaking = "breaking", True
                signals.append(f"breaking:{match.group(0).lower()}")
                break
    if alert_level is None:
        match = OFFICIAL_ALERT_SOURCES.search(combined)
        if match:
            alert_level, is_breaking = "developing", True
            signals.append(f"official-source:{match.group(0).lower()}")
    if alert_level is None:
        for pattern in DEVELOPING_PATTERNS:
            match = pattern.search(combined)
            if match:
                alert_level = "developing"
                signals.append(f"developing:{match.group(0).lower()}")
                break

    return BreakingResult(
        is_breaking=is_breaking,
        alert_level=alert_level,
        sentiment=classify_sentiment(combined),
        expires_at=now + BREAKING_WINDOW if is_breaking else None,
        signals=signals,
    )
