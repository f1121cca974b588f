"""
Date/time helpers, framework-agnostic.

MongoDB hands back naive datetimes unless the client is tz-aware, and stores
them at millisecond precision. Everything the auth core compares goes through
``ensure_utc`` first.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return *value* as an aware UTC datetime; naive values are assumed to be UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def expires_in(seconds: int, now: Optional[datetime] = None) -> datetime:
    """Return the aware UTC datetime *seconds* after *now* (default: current time)."""
    return (now or utc_now()) + timedelta(seconds=seconds)


def truncate_to_millis(timestamp: float) -> float:
    """Floor a POSIX timestamp to millisecond precision, matching BSON datetimes."""
    return int(timestamp * 1000) / 1000
