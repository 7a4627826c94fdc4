# Overview: Access guard; authentication, lockout, session liveness and permissions for the terminal.

"""
Access Guard

States:
- LOGGED_OUT: nobody signed in
- LOGGED_IN: a user holds the terminal's single session
- LOCKED_OUT: too many wrong passwords; no credential check until the
  deadline passes, then the lockout and the counter self-clear

Session expiry is evaluated lazily: every liveness query (is_user_authenticated,
get_current_user, validate_session, ...) first checks inactivity against
session_timeout and auto-logs-out when it has run out. There is no timer
thread to cancel.

Persisted state (session row, throttle row, security log) is committed
before the in-memory view changes, so a StorageError leaves the guard where
it was.
"""
from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import LoginThrottle
from ..permissions import ROLE_ADMIN, ROLE_CLERK, PermissionSet, permissions_for_role
from ..time_utils import remaining, to_utc_z, utcnow, whole_minutes_ceil
from ..validation import ConflictError, ValidationError
from . import auth_service, login_throttle_service, security_service, session_service
from .auth_service import PasswordValidationError
from .inventory_store import StorageError

logger = logging.getLogger(__name__)


class GuardState(str, Enum):
    LOGGED_OUT = "logged_out"
    LOGGED_IN = "logged_in"
    LOCKED_OUT = "locked_out"


@dataclass
class AuthResult:
    success: bool
    message: str
    user: dict | None = None
    session_id: str | None = None
    is_locked_out: bool = False
    remaining_attempts: int | None = None
    attempts: int = 0

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "message": self.message,
            "user": self.user,
            "session_id": self.session_id,
            "is_locked_out": self.is_locked_out,
            "remaining_attempts": self.remaining_attempts,
            "attempts": self.attempts,
        }


@dataclass
class OperationResult:
    success: bool
    message: str

    def to_dict(self) -> dict:
        return {"success": self.success, "message": self.message}


@dataclass
class SessionInfo:
    user: dict
    login_time: datetime
    last_activity: datetime
    time_left: timedelta
    session_id: str

    def to_dict(self) -> dict:
        return {
            "user": dict(self.user),
            "login_time": to_utc_z(self.login_time),
            "last_activity": to_utc_z(self.last_activity),
            "time_left_seconds": int(self.time_left.total_seconds()),
            "session_id": self.session_id,
        }


class AccessGuard:
    """Owns the terminal's authentication state; one instance per app."""

    def __init__(
        self,
        *,
        session_timeout: timedelta = timedelta(minutes=30),
        max_attempts: int = login_throttle_service.MAX_FAILED_ATTEMPTS,
        lockout_duration: timedelta = login_throttle_service.LOCKOUT_DURATION,
        activity_debounce: timedelta = timedelta(seconds=30),
        bcrypt_rounds: int = 12,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_timeout = session_timeout
        self.max_attempts = max_attempts
        self.lockout_duration = lockout_duration
        self.activity_debounce = activity_debounce
        self.bcrypt_rounds = bcrypt_rounds
        self._clock = clock

        self._user: dict | None = None
        self._session_id: str | None = None
        self._login_time: datetime | None = None
        self._last_activity: datetime | None = None
        self._persisted_activity: datetime | None = None
        self._restored = False
        self.last_logout_was_automatic = False

    @classmethod
    def from_config(cls, config, *, clock: Callable[[], datetime] = utcnow) -> "AccessGuard":
        return cls(
            session_timeout=timedelta(minutes=config["SESSION_TIMEOUT_MINUTES"]),
            max_attempts=config["MAX_FAILED_ATTEMPTS"],
            lockout_duration=timedelta(minutes=config["LOCKOUT_MINUTES"]),
            activity_debounce=timedelta(seconds=config["ACTIVITY_DEBOUNCE_SECONDS"]),
            bcrypt_rounds=config["BCRYPT_ROUNDS"],
            clock=clock,
        )

    # -- internals --

    def _commit(self, action: str) -> None:
        try:
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Storage failure during %s", action)
            raise StorageError(f"Could not {action}: storage unavailable") from exc

    def _set_session(self, user_view: dict, row) -> None:
        self._user = user_view
        self._session_id = row.session_id
        self._login_time = row.login_time
        self._last_activity = row.last_activity
        self._persisted_activity = row.last_activity

    def _clear_session(self) -> None:
        self._user = None
        self._session_id = None
        self._login_time = None
        self._last_activity = None
        self._persisted_activity = None

    def _ensure_restored(self) -> None:
        """Adopt the persisted open session once, so memory matches the store."""
        if self._restored:
            return
        row = session_service.get_open_session()
        if row is not None:
            user = auth_service.get_user(row.username)
            if user is None or not user.is_active:
                session_service.close_session(row, self._clock(), session_service.END_REASON_LOGOUT)
                self._commit("close orphaned session")
            else:
                self._set_session({"username": user.username, "role": user.role}, row)
                logger.info("Restored session for %s", user.username)
        self._restored = True

    def _peek_throttle(self) -> LoginThrottle | None:
        return db.session.get(LoginThrottle, login_throttle_service.THROTTLE_ROW_ID)

    # -- authentication --

    def authenticate(
        self,
        username: str,
        password: str,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthResult:
        """
        Verify credentials and open a session.

        While locked out, no credential check is made and no attempt is
        counted. A lockout whose deadline has passed is cleared first.
        Unknown and inactive users count as wrong passwords.
        """
        self._ensure_restored()
        now = self._clock()
        throttle = login_throttle_service.get_throttle()

        if login_throttle_service.is_locked(throttle, now):
            minutes = whole_minutes_ceil(remaining(throttle.lockout_until, now))
            security_service.log_security_event(
                username=username if isinstance(username, str) else None,
                event_type="LOGIN_BLOCKED",
                success=False,
                reason="Terminal locked",
                ip_address=ip_address,
                user_agent=user_agent,
                occurred_at=now,
            )
            self._commit("record blocked login")
            return AuthResult(
                success=False,
                message=f"Account locked. Try again in {minutes} minutes.",
                is_locked_out=True,
                remaining_attempts=0,
                attempts=throttle.failed_attempts,
            )

        if login_throttle_service.clear_if_expired(throttle, now):
            logger.info("Lockout expired; failed-attempt counter cleared")

        user = auth_service.get_user(username)
        valid = (
            user is not None
            and user.is_active
            and auth_service.verify_password(password or "", user.password_hash)
        )

        if valid:
            previous = session_service.get_open_session()
            if previous is not None:
                session_service.close_session(previous, now, session_service.END_REASON_LOGOUT)
            login_throttle_service.reset(throttle)
            row = session_service.open_session(user.username, now)
            user.last_login_at = now
            security_service.log_security_event(
                username=user.username,
                event_type="LOGIN_SUCCESS",
                success=True,
                ip_address=ip_address,
                user_agent=user_agent,
                occurred_at=now,
            )
            self._commit("log in")

            view = {"username": user.username, "role": user.role}
            self._set_session(view, row)
            self.last_logout_was_automatic = False
            logger.info("Login successful: %s", user.username)
            return AuthResult(
                success=True,
                message="Access granted",
                user=dict(view),
                session_id=row.session_id,
                attempts=0,
            )

        locked_now = login_throttle_service.record_failed_attempt(
            throttle,
            now,
            max_attempts=self.max_attempts,
            lockout_duration=self.lockout_duration,
        )
        attempts = throttle.failed_attempts
        security_service.log_security_event(
            username=username if isinstance(username, str) else None,
            event_type="LOGIN_FAILED",
            success=False,
            reason="Invalid credentials",
            ip_address=ip_address,
            user_agent=user_agent,
            occurred_at=now,
        )
        if locked_now:
            security_service.log_security_event(
                username=username if isinstance(username, str) else None,
                event_type="LOGIN_LOCKED",
                success=False,
                reason=f"Locked after {attempts} failed attempts",
                ip_address=ip_address,
                user_agent=user_agent,
                occurred_at=now,
            )
        self._commit("record failed login")

        if locked_now:
            minutes = whole_minutes_ceil(self.lockout_duration)
            logger.warning("Account locked after %d failed attempts", attempts)
            return AuthResult(
                success=False,
                message=f"Too many failed attempts. Account locked for {minutes} minutes.",
                is_locked_out=True,
                remaining_attempts=0,
                attempts=attempts,
            )

        left = self.max_attempts - attempts
        logger.info("Failed login attempt %d/%d", attempts, self.max_attempts)
        return AuthResult(
            success=False,
            message=f"Invalid credentials. {left} attempts remaining.",
            remaining_attempts=left,
            attempts=attempts,
        )

    # -- session liveness --

    def check_session_expiry(self) -> bool:
        """Auto-logout once inactivity reaches session_timeout. True if it did."""
        self._ensure_restored()
        if self._user is None:
            return False
        if self._clock() - self._last_activity >= self.session_timeout:
            self.logout(auto=True)
            return True
        return False

    def is_user_authenticated(self) -> bool:
        self.check_session_expiry()
        return self._user is not None

    def get_current_user(self) -> dict | None:
        self.check_session_expiry()
        return dict(self._user) if self._user else None

    def get_current_role(self) -> str | None:
        user = self.get_current_user()
        return user["role"] if user else None

    def get_user_permissions(self) -> PermissionSet:
        role = self.get_current_role()
        if role is None:
            return PermissionSet()
        return permissions_for_role(role)

    def get_session_info(self) -> SessionInfo | None:
        if not self.is_user_authenticated():
            return None
        elapsed = self._clock() - self._last_activity
        return SessionInfo(
            user=dict(self._user),
            login_time=self._login_time,
            last_activity=self._last_activity,
            time_left=max(self.session_timeout - elapsed, timedelta(0)),
            session_id=self._session_id,
        )

    def record_activity(self) -> bool:
        """
        Stamp user activity. The stored stamp is only rewritten when it is at
        least activity_debounce old.
        """
        if not self.is_user_authenticated():
            return False
        now = self._clock()
        if self._persisted_activity is None or now - self._persisted_activity >= self.activity_debounce:
            row = session_service.get_session(self._session_id)
            if row is not None:
                session_service.touch(row, now)
                self._commit("record activity")
            self._persisted_activity = now
        self._last_activity = now
        return True

    def validate_session(self, session_id: str | None) -> bool:
        """HTTP entry point: the presented id must be the live session's."""
        if not session_id or not self.is_user_authenticated():
            return False
        if not hmac.compare_digest(str(session_id).encode("utf-8"), self._session_id.encode("utf-8")):
            return False
        return self.record_activity()

    def logout(self, auto: bool = False) -> bool:
        """
        End the session. Idempotent: returns False when nobody is logged in.

        auto=True marks an inactivity expiry; last_logout_was_automatic lets
        callers pick the right message.
        """
        self._ensure_restored()
        if self._user is None:
            return False

        now = self._clock()
        username = self._user["username"]
        reason = session_service.END_REASON_EXPIRED if auto else session_service.END_REASON_LOGOUT
        row = session_service.get_session(self._session_id)
        if row is not None:
            session_service.close_session(row, now, reason)
        security_service.log_security_event(
            username=username,
            event_type="SESSION_EXPIRED" if auto else "LOGOUT",
            success=True,
            reason="Inactivity timeout" if auto else None,
            occurred_at=now,
        )
        self._commit("log out")

        self._clear_session()
        self.last_logout_was_automatic = auto
        if auto:
            logger.info("Session expired due to inactivity: %s", username)
        else:
            logger.info("Logout: %s", username)
        return True

    # -- lockout --

    def is_locked_out(self) -> bool:
        row = self._peek_throttle()
        if row is None:
            return False
        now = self._clock()
        if login_throttle_service.clear_if_expired(row, now):
            self._commit("clear expired lockout")
            logger.info("Lockout expired; failed-attempt counter cleared")
        return login_throttle_service.is_locked(row, now)

    def get_remaining_lockout(self) -> timedelta:
        if not self.is_locked_out():
            return timedelta(0)
        return remaining(self._peek_throttle().lockout_until, self._clock())

    def get_lockout_status(self) -> dict:
        self.is_locked_out()
        row = self._peek_throttle() or LoginThrottle(failed_attempts=0, lockout_until=None)
        return login_throttle_service.get_lockout_status(
            row,
            self._clock(),
            max_attempts=self.max_attempts,
            lockout_duration=self.lockout_duration,
        )

    @property
    def state(self) -> GuardState:
        if self.is_user_authenticated():
            return GuardState.LOGGED_IN
        if self.is_locked_out():
            return GuardState.LOCKED_OUT
        return GuardState.LOGGED_OUT

    # -- account management --

    def change_password(self, old_password: str, new_password: str) -> OperationResult:
        user_view = self.get_current_user()
        if user_view is None:
            return OperationResult(False, "Not authorized")
        user = auth_service.get_user(user_view["username"])
        if user is None or not auth_service.verify_password(old_password or "", user.password_hash):
            return OperationResult(False, "Current password is incorrect")
        try:
            auth_service.validate_password_strength(new_password)
        except PasswordValidationError as e:
            return OperationResult(False, str(e))

        security_service.log_security_event(
            username=user.username,
            event_type="PASSWORD_CHANGED",
            success=True,
            occurred_at=self._clock(),
        )
        auth_service.set_password(user, new_password, rounds=self.bcrypt_rounds)
        logger.info("Password changed: %s", user.username)
        return OperationResult(True, "Password changed successfully")

    def add_user(self, username: str, password: str, role: str = ROLE_CLERK) -> OperationResult:
        if self.get_current_role() != ROLE_ADMIN:
            return OperationResult(False, "Only the administrator can add users")
        try:
            user = auth_service.create_user(username, password, role, rounds=self.bcrypt_rounds)
        except (PasswordValidationError, ConflictError, ValidationError) as e:
            return OperationResult(False, str(e))

        security_service.log_security_event(
            username=self._user["username"],
            event_type="USER_CREATED",
            success=True,
            reason=f"Created {user.username} ({user.role})",
            occurred_at=self._clock(),
        )
        self._commit("record user creation")
        logger.info("User created: %s (%s)", user.username, user.role)
        return OperationResult(True, f"User {user.username} created successfully")

    # -- security log --

    def get_security_log(self, limit: int = 100) -> list[dict]:
        """Newest first; empty unless the current user may view it."""
        if not self.get_user_permissions().can_view_security_log:
            return []
        return [e.to_dict() for e in security_service.get_security_log(limit)]

    def cleanup(self, retention_days: int = 30) -> int:
        deleted = security_service.cleanup_security_events(
            retention_days=retention_days, now=self._clock()
        )
        logger.info("Security log cleanup removed %d events", deleted)
        return deleted
