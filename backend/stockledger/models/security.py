from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class SecurityEvent(db.Model):
    """
    Security event log.

    WHY: Track logins, failed attempts, lockouts and session ends so the
    administrator can review access to the terminal.

    IMMUTABLE: Never update. Rows are only removed by retention cleanup.
    """
    __tablename__ = "security_events"
    __table_args__ = (
        db.Index("ix_security_events_user_type", "username", "event_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Nullable for attempts with an empty username
    username = db.Column(db.String(64), nullable=True, index=True)

    # LOGIN_SUCCESS, LOGIN_FAILED, LOGIN_LOCKED, LOGOUT, SESSION_EXPIRED, ...
    event_type = db.Column(db.String(64), nullable=False, index=True)
    success = db.Column(db.Boolean, nullable=False)
    reason = db.Column(db.Text, nullable=True)

    # Client context
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "event_type": self.event_type,
            "success": self.success,
            "reason": self.reason,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class AuditEvent(db.Model):
    """
    Append-only trail of catalog ledger events (product added, sale, ...).

    Written by an observer subscribed to the ledger, after the change it
    describes has been committed.
    """
    __tablename__ = "audit_events"
    __table_args__ = (
        db.Index("ix_audit_events_type_occurred", "event_type", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_type = db.Column(db.String(32), nullable=False)
    product_id = db.Column(db.Integer, nullable=True, index=True)
    sku = db.Column(db.String(20), nullable=True)
    actor = db.Column(db.String(64), nullable=True)
    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.Text, nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "product_id": self.product_id,
            "sku": self.sku,
            "actor": self.actor,
            "note": self.note,
            "payload": self.payload,
            "occurred_at": to_utc_z(self.occurred_at),
        }
