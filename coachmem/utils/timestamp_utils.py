"""
Timestamp utilities for consistent time handling across the engine.

All datetimes are timezone-aware UTC; the data store exchanges ISO-8601 strings.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def days_ago(days: float, now: Optional[datetime] = None) -> datetime:
    """Return the instant `days` days before now (or before the given instant)."""
    return (now or utcnow()) - timedelta(days=days)


def to_iso(value: Optional[datetime] = None) -> str:
    """Convert a datetime to an ISO-8601 string (current time if None)."""
    if value is None:
        value = utcnow()
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO string or datetime into an aware UTC datetime.

    Args:
        value: ISO-8601 string (a trailing 'Z' is accepted), datetime, or None

    Returns:
        Aware datetime, or None when the value is missing or unparseable
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def format_day(value: Optional[datetime]) -> str:
    """Human readable day used in prompts, e.g. 'Mon Mar 03 2025'."""
    if value is None:
        return 'unknown date'
    return value.strftime('%a %b %d %Y')
