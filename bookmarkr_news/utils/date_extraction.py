"""
Date helpers for publication timestamps coming from feeds, page metadata and URLs.

All returned datetimes are timezone-aware UTC.
"""

import re
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

# Ordered from most to least specific. Month-level matches use day 1.
_URL_DATE_PATTERNS = [
    (re.compile(r'/(\d{4})/(\d{1,2})/(\d{1,2})/'), "/YYYY/MM/DD/"),
    (re.compile(r'/(\d{4})-(\d{1,2})-(\d{1,2})[-/]'), "/YYYY-MM-DD/"),
    (re.compile(r'-(\d{4})-(\d{1,2})-(\d{1,2})'), "-YYYY-MM-DD"),
    (re.compile(r'/(\d{4})(\d{2})(\d{2})/'), "/YYYYMMDD/"),
    (re.compile(r'/(\d{4})/(\d{1,2})/'), "/YYYY/MM/"),
]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def extract_date_from_url(url: str) -> Optional[datetime]:
    """
    Extract a publication date from URL patterns commonly used by news sites.

    Supports patterns like:
    - /2025/10/28/article-title
    - /2025-10-28/article-title
    - /article-title-2025-10-28
    - /20251028/article-title
    - /2025/10/ (month-level precision)

    Args:
        url: The article URL

    Returns:
        UTC datetime if a valid date is found, None otherwise
    """
    if not url:
        return None

    for pattern, label in _URL_DATE_PATTERNS:
        match = pattern.search(url)
        if not match:
            continue
        groups = match.groups()
        year, month = int(groups[0]), int(groups[1])
        day = int(groups[2]) if len(groups) > 2 else 1
        try:
            dt = datetime(year, month, day, tzinfo=timezone.utc)
        except ValueError:
            continue  # e.g. /2024/13/45/, try the next shape
        logger.debug(f"Extracted date from URL pattern {label}: {dt.date()}")
        return dt

    logger.debug(f"No date pattern found in URL: {url[:100]}")
    return None


def parse_published_date(value: Any) -> Optional[datetime]:
    """
    Parse a publication timestamp from feed or page metadata.

    Accepts datetimes, ``time.struct_time`` values as produced by feedparser,
    and free-form strings (RFC 822, ISO 8601 and friends).
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        return to_utc(value)

    # feedparser *_parsed fields
    if hasattr(value, "tm_year"):
        try:
            return datetime(*value[:6], tzinfo=timezone.utc)
        except (TypeError, ValueError):
            return None

    try:
        return to_utc(date_parser.parse(str(value)))
    except (ValueError, OverflowError, TypeError) as e:
        logger.debug(f"Could not parse date {value!r}: {e}")
        return None


def get_best_date(
    published: Any = None,
    url: Optional[str] = None,
    fallback: Optional[datetime] = None,
) -> datetime:
    """
    Pick the best available publication date.

    Priority:
    1. An explicit published value (if parseable)
    2. Date extracted from the URL
    3. ``fallback``, or the current time
    """
    parsed = parse_published_date(published)
    if parsed:
        return parsed

    url_date = extract_date_from_url(url) if url else None
    if url_date:
        return url_date

    return fallback or utc_now()
