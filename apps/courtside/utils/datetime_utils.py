"""
Datetime utility functions.
Provides replacements for deprecated datetime functions.
"""

from datetime import datetime
from typing import Optional
import pytz


def utcnow() -> datetime:
    """
    Get current UTC datetime using pytz.UTC.

    Returns:
        Current UTC datetime with pytz timezone information
    """
    return datetime.now(pytz.UTC)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Attach UTC to a naive datetime read back from the database.

    SQLite drops tzinfo on DateTime(timezone=True) columns while PostgreSQL
    keeps it, so every comparison against utcnow() goes through here.

    Args:
        value: Datetime from a model column (may be naive, aware, or None)

    Returns:
        Timezone-aware datetime in UTC, or None
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC)


def is_past(value: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """Return True when value is set and strictly earlier than now."""
    if value is None:
        return False
    return ensure_utc(value) < (now or utcnow())


def isoformat_or_none(value: Optional[datetime]) -> Optional[str]:
    """ISO-8601 string for a column value, normalized to UTC."""
    value = ensure_utc(value)
    return value.isoformat() if value else None
