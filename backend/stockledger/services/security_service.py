# Overview: Security log writes, reads and retention.

from __future__ import annotations

from datetime import datetime, timedelta

from ..extensions import db
from ..models import SecurityEvent
from ..time_utils import utcnow


# Most recent entries kept visible in the security log view
SECURITY_LOG_MAX_ENTRIES = 1000


def log_security_event(
    username: str | None,
    event_type: str,
    success: bool,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    occurred_at: datetime | None = None,
) -> SecurityEvent:
    """
    Stage a security event. The caller commits it together with the
    state change it describes.

    event_type examples:
    - LOGIN_SUCCESS
    - LOGIN_FAILED
    - LOGIN_LOCKED
    - LOGOUT
    - SESSION_EXPIRED
    - PASSWORD_CHANGED
    - USER_CREATED
    """
    event = SecurityEvent(
        username=username,
        event_type=event_type,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=occurred_at or utcnow(),
    )
    db.session.add(event)
    return event


def get_security_log(limit: int = 100) -> list[SecurityEvent]:
    """Newest first, capped at SECURITY_LOG_MAX_ENTRIES."""
    limit = max(1, min(int(limit), SECURITY_LOG_MAX_ENTRIES))
    return (
        db.session.query(SecurityEvent)
        .order_by(SecurityEvent.occurred_at.desc(), SecurityEvent.id.desc())
        .limit(limit)
        .all()
    )


def cleanup_security_events(*, retention_days: int = 30, now: datetime | None = None) -> int:
    """Delete security events older than retention_days. Returns rows deleted."""
    cutoff = (now or utcnow()) - timedelta(days=retention_days)
    deleted = db.session.query(SecurityEvent).filter(
        SecurityEvent.occurred_at < cutoff
    ).delete()
    db.session.commit()
    return deleted
