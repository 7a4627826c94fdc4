# Overview: Service-layer operations for session; encapsulates database work for AuthSession rows.

"""
Session Management Service

WHY: The terminal's login session must survive a process restart, and its
end must be recorded as either a manual logout or an inactivity expiry.

SECURITY FEATURES:
- Cryptographically secure random session ids (32 bytes)
- At most one open session row (ended_at IS NULL) at a time
- Idle timeout is decided by the access guard; this module only stores
"""

from __future__ import annotations

import secrets
from datetime import datetime

from ..extensions import db
from ..models import AuthSession


END_REASON_LOGOUT = "logout"
END_REASON_EXPIRED = "expired"


def generate_session_id() -> str:
    """
    Generate cryptographically secure random session id.

    Returns 64-character hex string (32 bytes of entropy).
    """
    return secrets.token_hex(32)


def open_session(username: str, now: datetime) -> AuthSession:
    """Close any stray open session and stage a new one. Caller commits."""
    for stale in get_open_sessions():
        stale.ended_at = now
        stale.end_reason = END_REASON_LOGOUT

    session = AuthSession(
        session_id=generate_session_id(),
        username=username,
        login_time=now,
        last_activity=now,
    )
    db.session.add(session)
    return session


def get_open_sessions() -> list[AuthSession]:
    return (
        db.session.query(AuthSession)
        .filter(AuthSession.ended_at.is_(None))
        .order_by(AuthSession.login_time.desc())
        .all()
    )


def get_open_session() -> AuthSession | None:
    """The terminal's live session row, if any (newest wins)."""
    return (
        db.session.query(AuthSession)
        .filter(AuthSession.ended_at.is_(None))
        .order_by(AuthSession.login_time.desc(), AuthSession.id.desc())
        .first()
    )


def get_session(session_id: str) -> AuthSession | None:
    if not session_id:
        return None
    return db.session.query(AuthSession).filter_by(session_id=session_id).first()


def touch(session: AuthSession, now: datetime) -> None:
    session.last_activity = now


def close_session(session: AuthSession, now: datetime, reason: str) -> None:
    """Mark the session ended. No-op for an already closed row. Caller commits."""
    if session.ended_at is not None:
        return
    session.ended_at = now
    session.end_reason = reason
