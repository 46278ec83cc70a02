"""
Utilities Package

Helper functions used across the application.

Time handling: every timestamp inside the feed engine is a timezone-aware UTC
datetime. SQLite hands back naive datetimes and cached payloads carry ISO
strings, so values are passed through as_utc() at the edges.
"""

from datetime import UTC, datetime, timedelta


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def days_ago(days: int, now: datetime | None = None) -> datetime:
    """Start of a trailing window of `days` days."""
    return (now or utcnow()) - timedelta(days=days)


def parse_timestamp(value: str | None) -> datetime | None:
    """Inverse of datetime.isoformat() for cached values."""
    if not value:
        return None
    return as_utc(datetime.fromisoformat(value))
