# Overview: Backup export/import of the whole catalog and sale ledger.

"""
Backup Service

Document shape (version 1):

    {
      "version": 1,
      "exportDate": "2024-01-01T00:00:00.000Z",
      "products": [{id, sku, name, category, price, quantity, minStock,
                    barcode, supplier, createdAt, updatedAt}, ...],
      "sales": [{id, productId, sku, name, quantity, unitPrice, total, date}, ...],
      "metadata": {"totalProducts": n, "totalSales": m}
    }

Import is all-or-nothing: every row is validated first and all problems are
reported together; only a clean document replaces the current data.
"""

from __future__ import annotations

import secrets
import string
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Any

from ..time_utils import parse_iso_datetime, to_utc_z, utcnow
from ..validation import (
    SUPPLIER_MAX_LENGTH,
    ValidationError,
    is_missing,
    normalize_amount,
    normalize_barcode,
    normalize_category,
    normalize_name,
    normalize_optional_text,
    normalize_positive_quantity,
    normalize_price,
    normalize_quantity,
    normalize_sku,
    parse_int,
)
from .catalog_service import CatalogLedger
from .records import ProductRecord, SaleRecord


BACKUP_VERSION = 1
BACKUP_PREFIX = "stockledger-backup"
IMPORT_REQUIRED_FIELDS = ("sku", "name", "category", "price", "quantity")
SALE_REQUIRED_FIELDS = ("sku", "quantity", "date")

# Above this many products a weekly backup is recommended
WEEKLY_BACKUP_THRESHOLD = 100


class ImportValidationError(ValidationError):
    """The backup document was rejected; errors lists every problem found."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("Invalid import data: " + "; ".join(self.errors))


def export_data(ledger: CatalogLedger, *, now: datetime | None = None) -> dict:
    products = ledger.get_all_products()
    sales = ledger.get_sales()
    return {
        "version": BACKUP_VERSION,
        "exportDate": to_utc_z(now or utcnow()),
        "products": [p.to_backup_dict() for p in products],
        "sales": [s.to_backup_dict() for s in sales],
        "metadata": {
            "totalProducts": len(products),
            "totalSales": len(sales),
        },
    }


def _field(row: dict, snake: str, camel: str | None = None) -> Any:
    if snake in row:
        return row[snake]
    if camel is not None:
        return row.get(camel)
    return None


def _parse_timestamp(value: Any, field: str) -> datetime | None:
    if is_missing(value):
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be an ISO-8601 timestamp")
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 timestamp")


def _parse_product(row: Any, now: datetime) -> ProductRecord:
    if not isinstance(row, dict):
        raise ValidationError("must be an object")
    missing = [f for f in IMPORT_REQUIRED_FIELDS if row.get(f) is None]
    if missing:
        raise ValidationError(f"Missing fields: {', '.join(missing)}")

    raw_id = row.get("id")
    product_id = None
    if raw_id is not None:
        product_id = parse_int(raw_id, "id")
        if product_id < 1:
            raise ValidationError("id must be a positive integer")

    min_stock = _field(row, "min_stock", "minStock")
    created_at = _parse_timestamp(_field(row, "created_at", "createdAt"), "createdAt") or now
    updated_at = _parse_timestamp(_field(row, "updated_at", "updatedAt"), "updatedAt") or created_at

    return ProductRecord(
        id=product_id,
        sku=normalize_sku(row["sku"]),
        name=normalize_name(row["name"]),
        category=normalize_category(row["category"]),
        price=normalize_price(row["price"]),
        quantity=normalize_quantity(row["quantity"], "quantity", cap=False),
        min_stock=normalize_quantity(min_stock, "minStock", cap=False) if min_stock is not None else 0,
        barcode=normalize_barcode(row.get("barcode")),
        supplier=normalize_optional_text(row.get("supplier"), "supplier", max_length=SUPPLIER_MAX_LENGTH),
        created_at=created_at,
        updated_at=updated_at,
    )


def _parse_sale(row: Any) -> SaleRecord:
    if not isinstance(row, dict):
        raise ValidationError("must be an object")
    missing = [f for f in SALE_REQUIRED_FIELDS if row.get(f) is None]
    if missing:
        raise ValidationError(f"Missing fields: {', '.join(missing)}")

    quantity = normalize_positive_quantity(row["quantity"])
    raw_unit = _field(row, "unit_price", "unitPrice")
    raw_total = row.get("total")
    if raw_unit is None and raw_total is None:
        raise ValidationError("Missing fields: unitPrice")
    unit_price = normalize_price(raw_unit) if raw_unit is not None else (
        normalize_amount(raw_total, "total") / quantity
    ).quantize(Decimal("0.01"))
    total = normalize_amount(raw_total, "total") if raw_total is not None else unit_price * quantity

    raw_product_id = _field(row, "product_id", "productId")
    date = _parse_timestamp(row["date"], "date")
    if date is None:
        raise ValidationError("Missing fields: date")

    return SaleRecord(
        product_id=parse_int(raw_product_id, "productId") if raw_product_id is not None else 0,
        sku=normalize_sku(row["sku"]),
        name=normalize_name(row["name"]) if not is_missing(row.get("name")) else normalize_sku(row["sku"]),
        quantity=quantity,
        unit_price=unit_price,
        total=total,
        date=date,
    )


def _parse_document(data: Any, now: datetime) -> tuple[list[ProductRecord], list[SaleRecord], list[str]]:
    errors: list[str] = []
    if not isinstance(data, dict):
        return [], [], ["Invalid import data"]

    raw_products = data.get("products")
    raw_sales = data.get("sales")
    if not isinstance(raw_products, list):
        errors.append("Invalid products structure")
        raw_products = []
    if raw_sales is not None and not isinstance(raw_sales, list):
        errors.append("Invalid sales structure")
    if not isinstance(raw_sales, list):
        raw_sales = []

    products: list[ProductRecord] = []
    seen_ids: dict[int, int] = {}
    seen_skus: dict[str, int] = {}
    seen_barcodes: dict[str, int] = {}
    for index, row in enumerate(raw_products, start=1):
        try:
            product = _parse_product(row, now)
        except ValidationError as e:
            errors.append(f"Product {index}: {e}")
            continue
        if product.id is not None and product.id in seen_ids:
            errors.append(f"Product {index}: duplicate id {product.id} (also product {seen_ids[product.id]})")
            continue
        if product.sku in seen_skus:
            errors.append(f"Product {index}: duplicate sku {product.sku} (also product {seen_skus[product.sku]})")
            continue
        if product.barcode and product.barcode in seen_barcodes:
            errors.append(
                f"Product {index}: duplicate barcode {product.barcode} "
                f"(also product {seen_barcodes[product.barcode]})"
            )
            continue
        if product.id is not None:
            seen_ids[product.id] = index
        seen_skus[product.sku] = index
        if product.barcode:
            seen_barcodes[product.barcode] = index
        products.append(product)

    # Rows without an id get fresh ones above every id in the document
    next_id = max(seen_ids, default=0) + 1
    for i, product in enumerate(products):
        if product.id is None:
            products[i] = replace(product, id=next_id)
            next_id += 1

    sales: list[SaleRecord] = []
    for index, row in enumerate(raw_sales, start=1):
        try:
            sales.append(_parse_sale(row))
        except ValidationError as e:
            errors.append(f"Sale {index}: {e}")

    return products, sales, errors


def validate_import_data(data: Any) -> list[str]:
    """Every problem in the document, as readable strings. Empty means valid."""
    _, _, errors = _parse_document(data, utcnow())
    return errors


def import_data(ledger: CatalogLedger, data: Any) -> dict:
    """
    Replace all products and sales with the document's contents.

    Raises ImportValidationError (nothing changed) or StorageError.
    """
    products, sales, errors = _parse_document(data, utcnow())
    if errors:
        raise ImportValidationError(errors)
    summary = {"products": len(products), "sales": len(sales)}
    ledger.replace_all(products, sales, source=summary)
    return summary


def generate_backup_filename(now: datetime | None = None) -> str:
    """stockledger-backup-2024-01-15T10-30-00-ab12cd.json"""
    stamp = (now or utcnow()).strftime("%Y-%m-%dT%H-%M-%S")
    alphabet = string.ascii_lowercase + string.digits
    suffix = "".join(secrets.choice(alphabet) for _ in range(6))
    return f"{BACKUP_PREFIX}-{stamp}-{suffix}.json"


def get_backup_recommendations(ledger: CatalogLedger) -> list[dict]:
    stats = ledger.get_statistics()
    recommendations = []
    if stats.low_stock_count > 0:
        recommendations.append({
            "type": "warning",
            "message": f"{stats.low_stock_count} products with low stock need attention",
            "action": "restock",
        })
    if stats.total_products > WEEKLY_BACKUP_THRESHOLD:
        recommendations.append({
            "type": "info",
            "message": "A weekly inventory backup is recommended",
            "action": "backup",
        })
    return recommendations
