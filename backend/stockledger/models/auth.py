from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class User(db.Model):
    """
    Credential table for the terminal.

    Role is an explicit column; nothing infers it from the username.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("username", name="uq_users_username"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False, index=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    # admin | manager | clerk
    role = db.Column(db.String(32), nullable=False, default="clerk")

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class AuthSession(db.Model):
    """
    Persisted login session so a restart can restore the live session.

    At most one row has ended_at IS NULL: the terminal's current session.
    end_reason is "logout" for manual logout and "expired" for inactivity.
    """
    __tablename__ = "auth_sessions"
    __table_args__ = (
        db.Index("ix_auth_sessions_open", "ended_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.String(64), nullable=False, unique=True)
    username = db.Column(db.String(64), nullable=False, index=True)

    login_time = db.Column(db.DateTime(timezone=True), nullable=False)
    last_activity = db.Column(db.DateTime(timezone=True), nullable=False)

    ended_at = db.Column(db.DateTime(timezone=True), nullable=True)
    end_reason = db.Column(db.String(16), nullable=True)

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "username": self.username,
            "login_time": to_utc_z(self.login_time),
            "last_activity": to_utc_z(self.last_activity),
            "ended_at": to_utc_z(self.ended_at),
            "end_reason": self.end_reason,
        }


class LoginThrottle(db.Model):
    """
    Failed-attempt counter and lockout deadline for the terminal.

    Single row (id=1). Owned exclusively by the access guard.
    """
    __tablename__ = "login_throttle"

    id = db.Column(db.Integer, primary_key=True)
    failed_attempts = db.Column(db.Integer, nullable=False, default=0)
    lockout_until = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "failed_attempts": self.failed_attempts,
            "lockout_until": to_utc_z(self.lockout_until),
        }
