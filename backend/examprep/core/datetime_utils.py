"""
Datetime helpers shared by the session engine.
"""
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """
    Return the current time as a timezone-aware UTC datetime.

    All lifecycle decisions (elapsed time, expiry, retention) read the clock
    through this function so tests can patch a single place.
    """
    return datetime.now(timezone.utc)


def ensure_timezone_aware(dt: Optional[datetime]) -> datetime:
    """
    Attach UTC to a naive datetime.

    SQLite hands back naive datetimes even for ``DateTime(timezone=True)``
    columns, so every value read from storage goes through here before any
    arithmetic with ``utc_now()``.

    Raises:
        ValueError: If dt is None
    """
    if dt is None:
        raise ValueError("datetime cannot be None")
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def minutes_between(start: datetime, end: datetime) -> float:
    """Elapsed minutes from start to end (negative if end precedes start)."""
    start = ensure_timezone_aware(start)
    end = ensure_timezone_aware(end)
    return (end - start).total_seconds() / 60.0
