"""
Date and time utilities for Moonfolio.

Every timestamp the service stores or returns is timezone-aware UTC.
"""
from datetime import datetime, timezone


def utcnow() -> datetime:
    """
    Get current UTC datetime with timezone info.

    Example:
        >>> utcnow().tzinfo
        datetime.timezone.utc

    Note:
        Always use this function instead of datetime.now() to ensure
        timezone-aware timestamps across the application.
    """
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo) and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def from_unix_millis(millis: int | float) -> datetime:
    """Convert a millisecond epoch timestamp (market data APIs) to an aware datetime."""
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
