"""Date utility functions for review scheduling."""
from datetime import UTC, datetime, timedelta
from typing import Optional

SECONDS_PER_DAY = 60 * 60 * 24


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return a timezone-aware UTC datetime.

    SQLite hands back naive datetimes even for ``DateTime(timezone=True)``
    columns, those are treated as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def utc_now() -> datetime:
    """Current time in UTC."""
    return datetime.now(UTC)


def add_days(date: datetime, days: int) -> datetime:
    """Add days to a date, returning a new datetime. Days may be negative."""
    return date + timedelta(days=days)


def days_between(start: datetime, end: datetime) -> int:
    """Whole days from start to end (end - start), floored."""
    start, end = ensure_utc(start), ensure_utc(end)
    return int((end - start).total_seconds() // SECONDS_PER_DAY)
