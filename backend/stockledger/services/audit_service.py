# Overview: Append-only audit trail of catalog ledger events.

"""
Audit Trail Invariants (authoritative)

- Append-only: rows are never updated or deleted.
- Written by an observer after the ledger change has been committed; a failed
  audit write is logged and never undoes the change.
- payload is a compact JSON summary, not a full record copy.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import AuditEvent
from ..time_utils import utcnow
from .catalog_service import (
    EVENT_DATA_IMPORTED,
    EVENT_INVENTORY_LOADED,
    EVENT_PRODUCT_ADDED,
    EVENT_PRODUCT_DELETED,
    EVENT_PRODUCT_RESTOCKED,
    EVENT_PRODUCT_UPDATED,
    EVENT_SALE_PROCESSED,
    EVENT_STOCK_ADJUSTED,
    CatalogLedger,
    SaleResult,
)
from .records import ProductRecord

logger = logging.getLogger(__name__)

AUDITED_EVENTS = (
    EVENT_PRODUCT_ADDED,
    EVENT_PRODUCT_UPDATED,
    EVENT_PRODUCT_DELETED,
    EVENT_SALE_PROCESSED,
    EVENT_PRODUCT_RESTOCKED,
    EVENT_STOCK_ADJUSTED,
    EVENT_DATA_IMPORTED,
)


def append_audit_event(
    *,
    event_type: str,
    product_id: int | None = None,
    sku: str | None = None,
    actor: str | None = None,
    note: str | None = None,
    payload: dict | None = None,
    occurred_at: Optional[datetime] = None,
) -> AuditEvent:
    ev = AuditEvent(
        event_type=event_type,
        product_id=product_id,
        sku=sku,
        actor=actor,
        note=note,
        payload=json.dumps(payload, sort_keys=True) if payload is not None else None,
        occurred_at=occurred_at or utcnow(),
    )
    db.session.add(ev)
    db.session.commit()
    return ev


def list_audit_events(*, event_type: str | None = None, sku: str | None = None, limit: int = 100) -> list[AuditEvent]:
    q = db.session.query(AuditEvent)
    if event_type:
        q = q.filter(AuditEvent.event_type == event_type)
    if sku:
        q = q.filter(AuditEvent.sku == sku.strip().upper())
    return q.order_by(AuditEvent.occurred_at.desc(), AuditEvent.id.desc()).limit(limit).all()


def _describe(event: str, payload) -> dict:
    """Map a ledger event payload onto audit columns."""
    if isinstance(payload, SaleResult):
        sale = payload.sale
        return {
            "product_id": sale.product_id,
            "sku": sale.sku,
            "note": f"Sold {sale.quantity}",
            "payload": {"sale_id": sale.id, "quantity": sale.quantity, "total": float(sale.total),
                        "remaining": payload.product.quantity},
        }
    if isinstance(payload, ProductRecord):
        return {
            "product_id": payload.id,
            "sku": payload.sku,
            "payload": {"quantity": payload.quantity, "price": float(payload.price)},
        }
    if isinstance(payload, dict) and isinstance(payload.get("product"), ProductRecord):
        product = payload["product"]
        delta = payload.get("quantity", payload.get("adjustment"))
        return {
            "product_id": product.id,
            "sku": product.sku,
            "note": f"{'Restocked' if event == EVENT_PRODUCT_RESTOCKED else 'Adjusted'} {delta:+d}",
            "payload": {"delta": delta, "quantity": product.quantity},
        }
    return {"note": event}


class LedgerAuditObserver:
    """Subscribes to a CatalogLedger and records each mutation as an AuditEvent."""

    def __init__(self, actor_resolver: Callable[[], Optional[str]] | None = None):
        self._actor_resolver = actor_resolver or (lambda: None)

    def attach(self, ledger: CatalogLedger) -> None:
        for event in AUDITED_EVENTS:
            ledger.on(event, self)

    def detach(self, ledger: CatalogLedger) -> None:
        for event in AUDITED_EVENTS:
            ledger.off(event, self)

    def __call__(self, event: str, payload) -> None:
        if event == EVENT_INVENTORY_LOADED:
            return
        fields = _describe(event, payload)
        try:
            append_audit_event(event_type=event, actor=self._actor_resolver(), **fields)
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Could not record audit event %s", event)
