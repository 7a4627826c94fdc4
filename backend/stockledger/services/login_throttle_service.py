"""
Login Throttling Service

WHY: Slow down password guessing at the terminal by limiting failed login
attempts. After too many failures the terminal is temporarily locked.

SECURITY FEATURES:
- One counter for the whole terminal (single LoginThrottle row, id=1)
- Lockout after max_attempts consecutive failures
- Lockout lasts lockout_duration from the failure that triggered it
- Cleared on successful login and when the lockout has run out
"""

from __future__ import annotations

from datetime import datetime, timedelta

from ..extensions import db
from ..models import LoginThrottle
from ..time_utils import remaining, whole_minutes_ceil


# Configuration defaults (overridden from app config by the access guard)
MAX_FAILED_ATTEMPTS = 3
LOCKOUT_DURATION = timedelta(minutes=15)

THROTTLE_ROW_ID = 1


def get_throttle() -> LoginThrottle:
    """Load the throttle row, creating it (unsaved until the next commit) if missing."""
    row = db.session.get(LoginThrottle, THROTTLE_ROW_ID)
    if row is None:
        row = LoginThrottle(id=THROTTLE_ROW_ID, failed_attempts=0, lockout_until=None)
        db.session.add(row)
    return row


def is_locked(row: LoginThrottle, now: datetime) -> bool:
    return row.lockout_until is not None and now < row.lockout_until


def clear_if_expired(row: LoginThrottle, now: datetime) -> bool:
    """
    Drop a lockout whose deadline has passed, together with the counter.

    Returns True if anything was cleared. Caller commits.
    """
    if row.lockout_until is not None and now >= row.lockout_until:
        row.lockout_until = None
        row.failed_attempts = 0
        return True
    return False


def record_failed_attempt(
    row: LoginThrottle,
    now: datetime,
    *,
    max_attempts: int = MAX_FAILED_ATTEMPTS,
    lockout_duration: timedelta = LOCKOUT_DURATION,
) -> bool:
    """
    Count one failure. Returns True if this failure started a lockout.

    Caller commits.
    """
    row.failed_attempts = (row.failed_attempts or 0) + 1
    if row.failed_attempts >= max_attempts:
        row.lockout_until = now + lockout_duration
        return True
    return False


def reset(row: LoginThrottle) -> None:
    row.failed_attempts = 0
    row.lockout_until = None


def get_lockout_status(
    row: LoginThrottle,
    now: datetime,
    *,
    max_attempts: int = MAX_FAILED_ATTEMPTS,
    lockout_duration: timedelta = LOCKOUT_DURATION,
) -> dict:
    """
    Get detailed lockout status for the terminal.

    Returns dict with:
    - locked: bool
    - failed_attempts: int
    - max_attempts: int
    - remaining_attempts: int
    - seconds_until_unlock: int | None
    - minutes_until_unlock: int | None (rounded up, as shown to users)
    """
    locked = is_locked(row, now)
    left = remaining(row.lockout_until, now) if locked else None
    failed = row.failed_attempts or 0
    return {
        "locked": locked,
        "failed_attempts": failed,
        "max_attempts": max_attempts,
        "remaining_attempts": max(max_attempts - failed, 0),
        "seconds_until_unlock": int(left.total_seconds()) if left is not None else None,
        "minutes_until_unlock": whole_minutes_ceil(left) if left is not None else None,
        "lockout_duration_minutes": int(lockout_duration.total_seconds() / 60),
    }
