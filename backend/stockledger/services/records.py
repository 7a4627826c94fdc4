# Overview: Plain domain records handed between the catalog ledger, its store and callers.

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal

from ..time_utils import to_utc_z
from ..validation import price_to_cents


def _money(value: Decimal) -> float:
    return float(value.quantize(Decimal("0.01")))


@dataclass
class ProductRecord:
    """
    One catalog entry as the ledger sees it.

    The ledger only ever hands out copies (see copy()); mutating a returned
    record has no effect until it is passed back to update_product().
    """
    id: int
    sku: str
    name: str
    category: str
    price: Decimal
    quantity: int
    min_stock: int
    barcode: str | None = None
    supplier: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.min_stock

    @property
    def inventory_value(self) -> Decimal:
        return self.price * self.quantity

    @property
    def price_cents(self) -> int:
        return price_to_cents(self.price)

    def copy(self) -> "ProductRecord":
        return replace(self)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "category": self.category,
            "price": _money(self.price),
            "price_cents": self.price_cents,
            "quantity": self.quantity,
            "min_stock": self.min_stock,
            "barcode": self.barcode,
            "supplier": self.supplier,
            "is_low_stock": self.is_low_stock,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

    def to_backup_dict(self) -> dict:
        """Backup document shape (camelCase keys)."""
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "category": self.category,
            "price": _money(self.price),
            "quantity": self.quantity,
            "minStock": self.min_stock,
            "barcode": self.barcode,
            "supplier": self.supplier,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


@dataclass(frozen=True)
class SaleRecord:
    """Immutable sale snapshot."""
    product_id: int
    sku: str
    name: str
    quantity: int
    unit_price: Decimal
    total: Decimal
    date: datetime
    id: int | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "sku": self.sku,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price": _money(self.unit_price),
            "total": _money(self.total),
            "date": to_utc_z(self.date),
        }

    def to_backup_dict(self) -> dict:
        return {
            "id": self.id,
            "productId": self.product_id,
            "sku": self.sku,
            "name": self.name,
            "quantity": self.quantity,
            "unitPrice": _money(self.unit_price),
            "total": _money(self.total),
            "date": to_utc_z(self.date),
        }
