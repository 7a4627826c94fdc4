from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp from a backup or query string.

    - None / "" -> None
    - naive values are taken as UTC
    - "...Z" and "+HH:MM" offsets are converted to UTC, tzinfo dropped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serialize to ISO-8601 with a trailing 'Z' (millisecond precision).
    Naive values are treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc)
    return dt_utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def remaining(until: Optional[datetime], now: datetime) -> timedelta:
    """Time left until `until`, never negative."""
    if until is None or until <= now:
        return timedelta(0)
    return until - now


def whole_minutes_ceil(delta: timedelta) -> int:
    seconds = int(delta.total_seconds())
    return (seconds + 59) // 60
