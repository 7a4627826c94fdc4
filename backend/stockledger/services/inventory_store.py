# Overview: SQLAlchemy-backed persistence for the catalog ledger.

"""
Inventory Store

The ledger's only path to the database. Every write is one unit of work:
stage the changes, commit (retrying transient lock errors), and on any
SQLAlchemy failure roll back and raise StorageError. The caller mutates its
in-memory copy only after a write returns.
"""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import LedgerSequence, Product, Sale
from ..validation import cents_to_price, price_to_cents
from .concurrency import commit_with_retry
from .records import ProductRecord, SaleRecord

logger = logging.getLogger(__name__)

PRODUCT_SEQUENCE = "products"


class StorageError(RuntimeError):
    """Persistence layer failure; nothing was written."""


def _to_record(row: Product) -> ProductRecord:
    return ProductRecord(
        id=row.id,
        sku=row.sku,
        name=row.name,
        category=row.category,
        price=cents_to_price(row.price_cents),
        quantity=row.quantity,
        min_stock=row.min_stock,
        barcode=row.barcode,
        supplier=row.supplier,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _sale_to_record(row: Sale) -> SaleRecord:
    return SaleRecord(
        id=row.id,
        product_id=row.product_id,
        sku=row.sku,
        name=row.name,
        quantity=row.quantity,
        unit_price=cents_to_price(row.unit_price_cents),
        total=cents_to_price(row.total_cents),
        date=row.sold_at,
    )


def _apply_record(row: Product, record: ProductRecord) -> None:
    row.sku = record.sku
    row.name = record.name
    row.category = record.category
    row.price_cents = record.price_cents
    row.quantity = record.quantity
    row.min_stock = record.min_stock
    row.barcode = record.barcode
    row.supplier = record.supplier
    row.created_at = record.created_at
    row.updated_at = record.updated_at


class InventoryStore:
    """Products, sales and the product id sequence."""

    def _write(self, apply, action: str):
        try:
            return commit_with_retry(apply)
        except StorageError:
            db.session.rollback()
            raise
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Storage failure during %s", action)
            raise StorageError(f"Could not {action}: storage unavailable") from exc

    def _read(self, query, action: str):
        try:
            return query()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Storage failure during %s", action)
            raise StorageError(f"Could not {action}: storage unavailable") from exc

    # -- sequence --

    def _bump_sequence(self, min_next: int) -> None:
        seq = db.session.get(LedgerSequence, PRODUCT_SEQUENCE)
        if seq is None:
            seq = LedgerSequence(name=PRODUCT_SEQUENCE, next_value=min_next)
            db.session.add(seq)
        elif seq.next_value < min_next:
            seq.next_value = min_next

    def peek_next_product_id(self) -> int:
        """Next unused product id: above both the high-water mark and any stored id."""
        def _q():
            seq = db.session.get(LedgerSequence, PRODUCT_SEQUENCE)
            max_id = db.session.query(func.max(Product.id)).scalar() or 0
            return max(seq.next_value if seq else 1, max_id + 1)
        return self._read(_q, "read product sequence")

    # -- products --

    def load_products(self) -> list[ProductRecord]:
        def _q():
            rows = db.session.query(Product).order_by(Product.id.asc()).all()
            return [_to_record(r) for r in rows]
        return self._read(_q, "load products")

    def get_product(self, product_id: int) -> ProductRecord | None:
        def _q():
            row = db.session.get(Product, product_id)
            return _to_record(row) if row else None
        return self._read(_q, "load product")

    def insert_product(self, record: ProductRecord) -> None:
        def _apply():
            row = Product(id=record.id)
            _apply_record(row, record)
            db.session.add(row)
            self._bump_sequence(record.id + 1)
        self._write(_apply, f"add product {record.sku}")

    def save_product(self, record: ProductRecord) -> None:
        def _apply():
            row = db.session.get(Product, record.id)
            if row is None:
                raise StorageError(f"Product {record.id} is missing from storage")
            _apply_record(row, record)
        self._write(_apply, f"update product {record.sku}")

    def delete_product(self, product_id: int) -> None:
        def _apply():
            row = db.session.get(Product, product_id)
            if row is not None:
                db.session.delete(row)
            # Keep the id retired even if it was the highest one
            self._bump_sequence(product_id + 1)
        self._write(_apply, f"delete product {product_id}")

    # -- sales --

    def record_sale(self, product: ProductRecord, sale: SaleRecord) -> SaleRecord:
        """Persist the stock decrement and the sale row in a single commit."""
        def _apply():
            row = db.session.get(Product, product.id)
            if row is None:
                raise StorageError(f"Product {product.id} is missing from storage")
            _apply_record(row, product)
            sale_row = Sale(
                product_id=sale.product_id,
                sku=sale.sku,
                name=sale.name,
                quantity=sale.quantity,
                unit_price_cents=price_to_cents(sale.unit_price),
                total_cents=price_to_cents(sale.total),
                sold_at=sale.date,
            )
            db.session.add(sale_row)
            db.session.flush()
            return sale_row.id
        sale_id = self._write(_apply, f"record sale of {product.sku}")
        return SaleRecord(
            id=sale_id,
            product_id=sale.product_id,
            sku=sale.sku,
            name=sale.name,
            quantity=sale.quantity,
            unit_price=sale.unit_price,
            total=sale.total,
            date=sale.date,
        )

    def list_sales(
        self,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        sku: str | None = None,
    ) -> list[SaleRecord]:
        def _q():
            query = db.session.query(Sale)
            if start is not None:
                query = query.filter(Sale.sold_at >= start)
            if end is not None:
                query = query.filter(Sale.sold_at <= end)
            if sku:
                query = query.filter(Sale.sku == sku.strip().upper())
            rows = query.order_by(Sale.sold_at.asc(), Sale.id.asc()).all()
            return [_sale_to_record(r) for r in rows]
        return self._read(_q, "load sales")

    def count_sales(self) -> int:
        return self._read(lambda: db.session.query(func.count(Sale.id)).scalar() or 0, "count sales")

    # -- bulk --

    def replace_all(self, products: list[ProductRecord], sales: list[SaleRecord]) -> None:
        """Clear products and sales and write the given sets in one transaction."""
        def _apply():
            db.session.query(Sale).delete()
            db.session.query(Product).delete()
            max_id = 0
            for record in products:
                row = Product(id=record.id)
                _apply_record(row, record)
                db.session.add(row)
                max_id = max(max_id, record.id)
            for sale in sales:
                db.session.add(Sale(
                    product_id=sale.product_id,
                    sku=sale.sku,
                    name=sale.name,
                    quantity=sale.quantity,
                    unit_price_cents=price_to_cents(sale.unit_price),
                    total_cents=price_to_cents(sale.total),
                    sold_at=sale.date,
                ))
            self._bump_sequence(max_id + 1)
        self._write(_apply, "import data")
