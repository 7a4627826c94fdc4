# Overview: Catalog ledger; owns the product set, stock arithmetic and sale recording.

"""
Catalog Ledger

Invariants (authoritative):
- SKU is unique under case-insensitive comparison (stored upper-cased).
- A non-empty barcode is unique. Enforced on add, update and import.
- quantity, price and min_stock are never negative.
- Product ids come from a monotonic sequence and are never reused.
- Sales are append-only snapshots; nothing here edits or deletes them.

Write discipline: persist first, then mutate the in-memory set. A
StorageError leaves memory untouched, so a failed operation has no effect.
Callers only ever receive copies of in-memory records.

Single writer: one ledger per process, driven by one terminal. Concurrent
writers would need per-record locking, which this class does not provide.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Callable

from ..time_utils import utcnow
from ..validation import (
    ConflictError,
    DuplicateError,
    ValidationError,
    is_missing,
    normalize_barcode,
    normalize_category,
    normalize_name,
    normalize_optional_text,
    normalize_positive_quantity,
    normalize_price,
    normalize_quantity,
    normalize_sku,
    parse_int,
    require_fields,
    SUPPLIER_MAX_LENGTH,
)
from .inventory_store import InventoryStore
from .records import ProductRecord, SaleRecord

logger = logging.getLogger(__name__)


EVENT_INVENTORY_LOADED = "inventoryLoaded"
EVENT_PRODUCT_ADDED = "productAdded"
EVENT_PRODUCT_UPDATED = "productUpdated"
EVENT_PRODUCT_DELETED = "productDeleted"
EVENT_SALE_PROCESSED = "saleProcessed"
EVENT_PRODUCT_RESTOCKED = "productRestocked"
EVENT_STOCK_ADJUSTED = "stockAdjusted"
EVENT_DATA_IMPORTED = "dataImported"

LEDGER_EVENTS = (
    EVENT_INVENTORY_LOADED,
    EVENT_PRODUCT_ADDED,
    EVENT_PRODUCT_UPDATED,
    EVENT_PRODUCT_DELETED,
    EVENT_SALE_PROCESSED,
    EVENT_PRODUCT_RESTOCKED,
    EVENT_STOCK_ADJUSTED,
    EVENT_DATA_IMPORTED,
)

EDITABLE_FIELDS = {"sku", "name", "category", "price", "quantity", "min_stock", "barcode", "supplier"}

SAMPLE_PRODUCTS = [
    {"sku": "TOR001", "name": 'Tornillo Madera 2" Phillips', "category": "Tornillos y Pernos",
     "price": "0.25", "quantity": 150, "min_stock": 20, "barcode": "1234567890123",
     "supplier": "Ferretería Central"},
    {"sku": "MAR001", "name": "Martillo Garra 16oz", "category": "Herramientas Manuales",
     "price": "24.99", "quantity": 8, "min_stock": 5, "barcode": "2345678901234",
     "supplier": "Herramientas Pro"},
    {"sku": "PIN001", "name": "Pintura Interior Blanca 1gal", "category": "Pinturas y Barnices",
     "price": "34.99", "quantity": 3, "min_stock": 5, "barcode": "3456789012345",
     "supplier": "Pinturas García"},
    {"sku": "TUE001", "name": 'Tuerca Hex 1/4"', "category": "Ferretería General",
     "price": "0.15", "quantity": 200, "min_stock": 25, "barcode": "4567890123456",
     "supplier": "Ferretería Central"},
    {"sku": "CAB001", "name": "Cable Cobre 12AWG 100ft", "category": "Material Eléctrico",
     "price": "89.99", "quantity": 2, "min_stock": 3, "barcode": "5678901234567",
     "supplier": "Eléctricos SA"},
    {"sku": "TAL001", "name": 'Taladro Eléctrico 1/2"', "category": "Herramientas Eléctricas",
     "price": "159.99", "quantity": 4, "min_stock": 2, "barcode": "6789012345678",
     "supplier": "Herramientas Pro"},
    {"sku": "TUB001", "name": 'Tubo PVC 2" x 6m', "category": "Plomería",
     "price": "12.50", "quantity": 25, "min_stock": 10, "barcode": "7890123456789",
     "supplier": "Plomería Rápida"},
    {"sku": "SIL001", "name": "Silicón Construcción Transparente", "category": "Adhesivos",
     "price": "4.99", "quantity": 15, "min_stock": 8, "barcode": "8901234567890",
     "supplier": "Químicos Industriales"},
]


class NotFoundError(LookupError):
    """No product matches the given id, SKU or barcode."""


class InsufficientStockError(ConflictError):
    def __init__(self, available: int, requested: int):
        self.available = available
        self.requested = requested
        super().__init__(f"Insufficient stock. Available: {available}, requested: {requested}")


class NegativeStockError(ConflictError):
    def __init__(self, current: int, adjustment: int):
        self.current = current
        self.adjustment = adjustment
        super().__init__(f"Quantity cannot be negative (current {current}, adjustment {adjustment})")


@dataclass
class SaleResult:
    sale: SaleRecord
    product: ProductRecord

    def to_dict(self) -> dict:
        return {"sale": self.sale.to_dict(), "product": self.product.to_dict()}


@dataclass
class CategorySummary:
    name: str
    count: int
    value: Decimal

    def to_dict(self) -> dict:
        return {"name": self.name, "count": self.count, "value": float(self.value)}


@dataclass
class InventoryStatistics:
    total_products: int
    low_stock_count: int
    total_value: Decimal
    categories_count: int
    average_product_value: Decimal
    categories: list[str] = field(default_factory=list)
    low_stock_products: list[ProductRecord] = field(default_factory=list)
    category_breakdown: list[CategorySummary] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "total_products": self.total_products,
            "low_stock_count": self.low_stock_count,
            "total_value": float(self.total_value),
            "categories_count": self.categories_count,
            "categories": list(self.categories),
            "average_product_value": float(self.average_product_value),
            "low_stock_products": [p.to_dict() for p in self.low_stock_products],
            "category_breakdown": [c.to_dict() for c in self.category_breakdown],
        }


def _pick(data: dict, key: str, alias: str | None = None) -> Any:
    if key in data:
        return data[key]
    if alias is not None:
        return data.get(alias)
    return None


class CatalogLedger:
    """
    Authoritative record set of products plus the sale ledger.

    Construct once (see create_app) and share; observers subscribe with on().
    """

    def __init__(
        self,
        store: InventoryStore | None = None,
        *,
        clock: Callable = utcnow,
        seed_sample_data: bool = False,
    ):
        self.store = store or InventoryStore()
        self._clock = clock
        self._seed_sample_data = seed_sample_data
        self._products: list[ProductRecord] = []
        self._next_id = 1
        # ids handed out by create_product() and not yet added
        self._issued_ids: set[int] = set()
        self._loaded = False
        self._handlers: dict[str, list[Callable]] = defaultdict(list)

    # -- lifecycle --

    def init(self, *, seed_sample_data: bool | None = None) -> None:
        """Load from the store, seed an empty catalog if asked, announce."""
        seed = self._seed_sample_data if seed_sample_data is None else seed_sample_data
        self.reload()
        if seed and not self._products:
            self.seed_sample_data()
        logger.info("Catalog ledger initialized with %d products", len(self._products))
        self.emit(EVENT_INVENTORY_LOADED, self.get_all_products())

    def reload(self) -> None:
        self._products = self.store.load_products()
        self._next_id = self.store.peek_next_product_id()
        self._loaded = True

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.init()

    def seed_sample_data(self) -> list[ProductRecord]:
        added = []
        for data in SAMPLE_PRODUCTS:
            added.append(self.add_product(self.create_product(data)))
        logger.info("Sample data initialized (%d products)", len(added))
        return added

    # -- observers --

    def on(self, event: str, handler: Callable) -> None:
        if event not in LEDGER_EVENTS:
            raise ValueError(f"Unknown ledger event: {event}")
        self._handlers[event].append(handler)

    def off(self, event: str, handler: Callable) -> None:
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, event: str, payload: Any) -> None:
        """Notify observers; a failing handler is logged and the rest still run."""
        for handler in list(self._handlers.get(event, [])):
            try:
                handler(event, payload)
            except Exception:
                logger.exception("Error in %s handler %r", event, handler)

    # -- construction / validation --

    def _take_next_id(self) -> int:
        self._ensure_loaded()
        product_id = self._next_id
        self._next_id += 1
        self._issued_ids.add(product_id)
        return product_id

    def create_product(self, data: dict) -> ProductRecord:
        """
        Build a normalized product from raw input.

        Trims strings, upper-cases the SKU, parses numbers (price rounded to
        cents), assigns the next id and timestamps. No uniqueness check and
        nothing is persisted; pass the result to add_product().
        """
        if not isinstance(data, dict):
            raise ValidationError("Product data must be an object")
        data = dict(data)
        if "min_stock" not in data and "minStock" in data:
            data["min_stock"] = data["minStock"]
        require_fields(data)

        sku = normalize_sku(data["sku"])
        name = normalize_name(data["name"])
        category = normalize_category(data["category"])
        price = normalize_price(data["price"])
        quantity = normalize_quantity(data["quantity"], "quantity")
        min_stock = normalize_quantity(data["min_stock"], "min_stock")
        barcode = normalize_barcode(data.get("barcode"))
        supplier = normalize_optional_text(data.get("supplier"), "supplier", max_length=SUPPLIER_MAX_LENGTH)

        now = self._clock()
        return ProductRecord(
            id=self._take_next_id(),
            sku=sku,
            name=name,
            category=category,
            price=price,
            quantity=quantity,
            min_stock=min_stock,
            barcode=barcode,
            supplier=supplier,
            created_at=now,
            updated_at=now,
        )

    def validate_product(self, product: ProductRecord) -> ProductRecord:
        """Re-check every field invariant; returns a normalized copy."""
        if not isinstance(product, ProductRecord):
            raise ValidationError("Expected a product record")
        if isinstance(product.id, bool) or not isinstance(product.id, int) or product.id < 1:
            raise ValidationError("id must be a positive integer")
        values = {
            "sku": product.sku,
            "name": product.name,
            "category": product.category,
            "price": product.price,
            "quantity": product.quantity,
            "min_stock": product.min_stock,
        }
        require_fields(values)
        return replace(
            product,
            sku=normalize_sku(product.sku),
            name=normalize_name(product.name),
            category=normalize_category(product.category),
            price=normalize_price(product.price),
            quantity=normalize_quantity(product.quantity, "quantity", cap=False),
            min_stock=normalize_quantity(product.min_stock, "min_stock", cap=False),
            barcode=normalize_barcode(product.barcode),
            supplier=normalize_optional_text(product.supplier, "supplier", max_length=SUPPLIER_MAX_LENGTH),
        )

    def _check_unique(self, product: ProductRecord, *, exclude_id: int | None = None) -> None:
        for existing in self._products:
            if existing.id == exclude_id:
                continue
            if existing.sku.upper() == product.sku.upper():
                raise DuplicateError("sku", product.sku, f"A product with SKU {product.sku} already exists")
            if product.barcode and existing.barcode == product.barcode:
                raise DuplicateError(
                    "barcode", product.barcode, f"A product with barcode {product.barcode} already exists"
                )

    def _index_of(self, product_id: int) -> int:
        for i, p in enumerate(self._products):
            if p.id == product_id:
                return i
        raise NotFoundError(f"Product {product_id} not found")

    def _replace_in_memory(self, product: ProductRecord) -> None:
        self._products[self._index_of(product.id)] = product

    # -- CRUD --

    def add_product(self, product: ProductRecord) -> ProductRecord:
        self._ensure_loaded()
        product = self.validate_product(product)
        if any(p.id == product.id for p in self._products):
            raise DuplicateError("id", str(product.id), f"Product id {product.id} is already in use")
        if product.id < self._next_id and product.id not in self._issued_ids:
            raise DuplicateError("id", str(product.id), f"Product id {product.id} was already used")
        self._check_unique(product)

        self.store.insert_product(product)
        self._products.append(product)
        self._issued_ids.discard(product.id)
        if product.id >= self._next_id:
            self._next_id = product.id + 1

        logger.info("Product added: %s", product.sku)
        self.emit(EVENT_PRODUCT_ADDED, product.copy())
        return product.copy()

    def update_product(self, product: ProductRecord) -> ProductRecord:
        """
        Overwrite a product by id.

        SKU and barcode uniqueness is re-checked against every other record.
        created_at is kept from the stored record; updated_at is stamped now.
        """
        self._ensure_loaded()
        current = self._products[self._index_of(product.id)]
        product = self.validate_product(product)
        self._check_unique(product, exclude_id=product.id)

        updated = replace(product, created_at=current.created_at, updated_at=self._clock())
        self.store.save_product(updated)
        self._replace_in_memory(updated)

        logger.info("Product updated: %s", updated.sku)
        self.emit(EVENT_PRODUCT_UPDATED, updated.copy())
        return updated.copy()

    def edit_product(self, product_id: int, changes: dict) -> ProductRecord:
        """Apply a partial field update (route PUT) through update_product()."""
        self._ensure_loaded()
        current = self._products[self._index_of(product_id)]
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

        patch = {}
        for key, value in changes.items():
            if key == "sku":
                patch["sku"] = normalize_sku(value)
            elif key == "name":
                patch["name"] = normalize_name(value)
            elif key == "category":
                patch["category"] = normalize_category(value)
            elif key == "price":
                patch["price"] = normalize_price(value)
            elif key in ("quantity", "min_stock"):
                patch[key] = normalize_quantity(value, key)
            elif key == "barcode":
                patch["barcode"] = normalize_barcode(value)
            elif key == "supplier":
                patch["supplier"] = normalize_optional_text(value, "supplier", max_length=SUPPLIER_MAX_LENGTH)
        return self.update_product(replace(current, **patch))

    def delete_product(self, product_id: int) -> bool:
        self._ensure_loaded()
        product = self._products[self._index_of(product_id)]

        self.store.delete_product(product_id)
        self._products = [p for p in self._products if p.id != product_id]

        logger.info("Product deleted: %s", product.sku)
        self.emit(EVENT_PRODUCT_DELETED, product.copy())
        return True

    # -- stock movements --

    def _resolve(self, identifier: str) -> ProductRecord:
        product = self._find(identifier)
        if product is None:
            raise NotFoundError(f"Product not found: {identifier}")
        return product

    def process_sale(self, identifier: str, quantity: int) -> SaleResult:
        """
        Sell `quantity` units of the product found by SKU or barcode.

        The stock decrement and the sale row are committed together; the sale
        snapshots name and unit price as they are right now.
        """
        self._ensure_loaded()
        qty = normalize_positive_quantity(quantity)
        product = self._resolve(identifier)
        if product.quantity < qty:
            raise InsufficientStockError(product.quantity, qty)

        now = self._clock()
        updated = replace(product, quantity=product.quantity - qty, updated_at=now)
        sale = SaleRecord(
            product_id=product.id,
            sku=product.sku,
            name=product.name,
            quantity=qty,
            unit_price=product.price,
            total=product.price * qty,
            date=now,
        )
        sale = self.store.record_sale(updated, sale)
        self._replace_in_memory(updated)

        result = SaleResult(sale=sale, product=updated.copy())
        logger.info("Sale processed: %s x %d", sale.sku, qty)
        self.emit(EVENT_SALE_PROCESSED, SaleResult(sale=sale, product=updated.copy()))
        return result

    def restock_product(self, identifier: str, quantity: int) -> ProductRecord:
        self._ensure_loaded()
        qty = normalize_positive_quantity(quantity)
        product = self._resolve(identifier)

        updated = replace(product, quantity=product.quantity + qty, updated_at=self._clock())
        self.store.save_product(updated)
        self._replace_in_memory(updated)

        logger.info("Product restocked: %s + %d", updated.sku, qty)
        self.emit(EVENT_PRODUCT_RESTOCKED, {"product": updated.copy(), "quantity": qty})
        return updated.copy()

    def adjust_stock(self, product_id: int, adjustment: int) -> ProductRecord:
        """Manual correction by id only; the result may not go below zero."""
        self._ensure_loaded()
        delta = parse_int(adjustment, "adjustment")
        product = self._products[self._index_of(product_id)]

        new_quantity = product.quantity + delta
        if new_quantity < 0:
            raise NegativeStockError(product.quantity, delta)

        updated = replace(product, quantity=new_quantity, updated_at=self._clock())
        self.store.save_product(updated)
        self._replace_in_memory(updated)

        logger.info("Stock adjusted: %s %+d", updated.sku, delta)
        self.emit(EVENT_STOCK_ADJUSTED, {"product": updated.copy(), "adjustment": delta})
        return updated.copy()

    # -- lookups --

    def _find(self, identifier: Any) -> ProductRecord | None:
        if is_missing(identifier) or not isinstance(identifier, (str, int)) or isinstance(identifier, bool):
            return None
        key = str(identifier).strip()
        sku = key.upper()
        for p in self._products:
            if p.sku == sku:
                return p
        for p in self._products:
            if p.barcode and p.barcode == key:
                return p
        return None

    def find_product(self, identifier: str) -> ProductRecord | None:
        """SKU (case-insensitive) first, then barcode, against the loaded set."""
        self._ensure_loaded()
        product = self._find(identifier)
        return product.copy() if product else None

    def get_product(self, product_id: int) -> ProductRecord | None:
        self._ensure_loaded()
        for p in self._products:
            if p.id == product_id:
                return p.copy()
        return None

    def get_product_by_sku(self, sku: str) -> ProductRecord | None:
        self._ensure_loaded()
        if is_missing(sku):
            return None
        key = str(sku).strip().upper()
        for p in self._products:
            if p.sku == key:
                return p.copy()
        return None

    def get_product_by_barcode(self, barcode: str) -> ProductRecord | None:
        self._ensure_loaded()
        if is_missing(barcode):
            return None
        key = str(barcode).strip()
        for p in self._products:
            if p.barcode == key:
                return p.copy()
        return None

    def get_all_products(self) -> list[ProductRecord]:
        self._ensure_loaded()
        return [p.copy() for p in self._products]

    def get_products_by_category(self, category: str) -> list[ProductRecord]:
        self._ensure_loaded()
        return [p.copy() for p in self._products if p.category == category]

    def get_categories(self) -> list[str]:
        self._ensure_loaded()
        seen: dict[str, None] = {}
        for p in self._products:
            seen.setdefault(p.category, None)
        return list(seen)

    def get_low_stock_products(self) -> list[ProductRecord]:
        self._ensure_loaded()
        return [p.copy() for p in self._products if p.is_low_stock]

    def search_products(self, term: str | None = None, category: str | None = None) -> list[ProductRecord]:
        """Case-insensitive substring search; optional exact category; insertion order."""
        self._ensure_loaded()
        results = self._products
        if term:
            needle = term.strip().lower()
            results = [
                p for p in results
                if needle in p.sku.lower()
                or needle in p.name.lower()
                or needle in p.category.lower()
                or (p.barcode and needle in p.barcode.lower())
                or (p.supplier and needle in p.supplier.lower())
            ]
        if category:
            results = [p for p in results if p.category == category]
        return [p.copy() for p in results]

    def get_product_suggestions(self, query: str | None, limit: int = 5) -> list[dict]:
        """Autocomplete rows; needs at least two characters."""
        self._ensure_loaded()
        if not query or len(query.strip()) < 2:
            return []
        raw = query.strip()
        term = raw.lower()
        matches = [
            p for p in self._products
            if term in p.sku.lower()
            or term in p.name.lower()
            or (p.barcode and raw in p.barcode)
        ][:limit]
        return [
            {
                "id": p.id,
                "sku": p.sku,
                "name": p.name,
                "barcode": p.barcode,
                "stock": p.quantity,
                "price": float(p.price),
            }
            for p in matches
        ]

    def get_statistics(self) -> InventoryStatistics:
        self._ensure_loaded()
        products = self._products
        total_products = len(products)
        low_stock = [p.copy() for p in products if p.is_low_stock]
        total_value = sum((p.inventory_value for p in products), Decimal("0"))

        breakdown: dict[str, CategorySummary] = {}
        for p in products:
            summary = breakdown.setdefault(p.category, CategorySummary(p.category, 0, Decimal("0")))
            summary.count += 1
            summary.value += p.inventory_value

        average = (total_value / total_products).quantize(Decimal("0.01")) if total_products else Decimal("0")
        return InventoryStatistics(
            total_products=total_products,
            low_stock_count=len(low_stock),
            total_value=total_value,
            categories_count=len(breakdown),
            average_product_value=average,
            categories=list(breakdown),
            low_stock_products=low_stock,
            category_breakdown=list(breakdown.values()),
        )

    # -- sale ledger / bulk --

    def get_sales(self, *, start=None, end=None, sku: str | None = None) -> list[SaleRecord]:
        return self.store.list_sales(start=start, end=end, sku=sku)

    def count_sales(self) -> int:
        return self.store.count_sales()

    def replace_all(self, products: list[ProductRecord], sales: list[SaleRecord], *, source: Any = None) -> None:
        """Swap the whole catalog and sale ledger (backup import)."""
        self.store.replace_all(products, sales)
        self.reload()
        logger.info("Inventory data imported: %d products, %d sales", len(products), len(sales))
        self.emit(EVENT_DATA_IMPORTED, source)

    def export_data(self) -> dict:
        from .backup_service import export_data
        return export_data(self)

    def import_data(self, data: dict) -> dict:
        from .backup_service import import_data
        return import_data(self, data)
