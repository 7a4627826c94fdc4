from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Stocked item in the shop catalog.

    SKU DESIGN DECISION:
    - sku is stored upper-cased, so the unique constraint doubles as the
      case-insensitive uniqueness rule.
    - barcode is optional and indexed; uniqueness among non-null barcodes is
      enforced by the ledger before every write (NULLs must stay repeatable).

    The id is assigned by the catalog ledger (see LedgerSequence), never by the
    database, so ids stay stable across export/import.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.Index("ix_products_category", "category"),
        db.Index("ix_products_name", "name"),
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=False)

    sku = db.Column(db.String(20), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    category = db.Column(db.String(100), nullable=False)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=0)

    barcode = db.Column(db.String(20), nullable=True, index=True)
    supplier = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} qty={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "category": self.category,
            "price_cents": self.price_cents,
            "quantity": self.quantity,
            "min_stock": self.min_stock,
            "barcode": self.barcode,
            "supplier": self.supplier,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Sale(db.Model):
    """
    Append-only sale record.

    name and unit price are snapshots taken at sale time; later edits to the
    product never rewrite history. No foreign key to products: deleting a
    product keeps its sales.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_sku_sold", "sku", "sold_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, nullable=False, index=True)
    sku = db.Column(db.String(20), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.BigInteger, nullable=False)

    sold_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "sku": self.sku,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_cents": self.total_cents,
            "sold_at": to_utc_z(self.sold_at),
        }


class LedgerSequence(db.Model):
    """
    Persisted high-water marks for ledger-assigned identifiers.

    WHY: product ids are never reused, even after the highest id is deleted
    and the service restarts.
    """
    __tablename__ = "ledger_sequences"

    name = db.Column(db.String(32), primary_key=True)
    next_value = db.Column(db.Integer, nullable=False, default=1)

    def to_dict(self) -> dict:
        return {"name": self.name, "next_value": self.next_value}
