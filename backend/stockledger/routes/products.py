# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Product catalog routes.

SECURITY: All routes require authentication.
- Read operations require VIEW_INVENTORY
- Create requires ADD_PRODUCTS, update EDIT_PRODUCTS, delete DELETE_PRODUCTS
"""
from flask import Blueprint, request, current_app

from ..decorators import require_auth, require_permission
from ..extensions import get_ledger
from ..services.catalog_service import NotFoundError
from ..services.inventory_store import StorageError
from ..validation import (
    PayloadPolicy,
    validate_payload,
    ValidationError,
    ConflictError,
)

PRODUCT_POLICY = PayloadPolicy(
    writable_fields={"sku", "name", "category", "price", "quantity", "min_stock", "barcode", "supplier"},
    required_on_create={"sku", "name", "category", "price", "quantity", "min_stock"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_products():
    """
    List products, optionally filtered.

    Query params:
    - q: str (optional) - case-insensitive match on sku, name, category, barcode, supplier
    - category: str (optional) - exact category
    - low_stock: bool (optional) - only products at or below their minimum
    """
    term = request.args.get("q")
    category = request.args.get("category")
    low_stock = request.args.get("low_stock", "").lower() in {"1", "true", "yes"}

    try:
        ledger = get_ledger()
        products = ledger.search_products(term, category)
    except StorageError as e:
        return {"error": str(e)}, 503

    if low_stock:
        products = [p for p in products if p.is_low_stock]
    return {"items": [p.to_dict() for p in products], "count": len(products)}


@products_bp.get("/categories")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_categories():
    return {"categories": get_ledger().get_categories()}


@products_bp.get("/suggestions")
@require_auth
@require_permission("VIEW_INVENTORY")
def product_suggestions():
    query = request.args.get("q", "")
    limit = request.args.get("limit", default=5, type=int)
    limit = max(1, min(limit, 20))
    return {"suggestions": get_ledger().get_product_suggestions(query, limit=limit)}


@products_bp.get("/lookup/<identifier>")
@require_auth
@require_permission("VIEW_INVENTORY")
def lookup_product(identifier: str):
    """Resolve a SKU (case-insensitive) or barcode, as scanned at the counter."""
    product = get_ledger().find_product(identifier)
    if product is None:
        return {"error": "Product not found"}, 404
    return product.to_dict()


@products_bp.get("/<int:product_id>")
@require_auth
@require_permission("VIEW_INVENTORY")
def get_product(product_id: int):
    product = get_ledger().get_product(product_id)
    if product is None:
        return {"error": "Product not found"}, 404
    return product.to_dict()


@products_bp.post("")
@require_auth
@require_permission("ADD_PRODUCTS")
def create_product_route():
    payload = request.get_json(silent=True)

    try:
        data = validate_payload(payload=payload, policy=PRODUCT_POLICY, partial=False)
        ledger = get_ledger()
        created = ledger.add_product(ledger.create_product(data))
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    except StorageError as e:
        return {"error": str(e)}, 503
    except Exception:
        current_app.logger.exception("Product creation failed")
        return {"error": "Internal server error"}, 500

    return created.to_dict(), 201


@products_bp.put("/<int:product_id>")
@require_auth
@require_permission("EDIT_PRODUCTS")
def update_product_route(product_id: int):
    """Partial update: only the fields sent are changed."""
    payload = request.get_json(silent=True)

    try:
        changes = validate_payload(payload=payload, policy=PRODUCT_POLICY, partial=True)
        updated = get_ledger().edit_product(product_id, changes)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError:
        return {"error": "Product not found"}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except StorageError as e:
        return {"error": str(e)}, 503
    except Exception:
        current_app.logger.exception("Product update failed")
        return {"error": "Internal server error"}, 500

    return updated.to_dict(), 200


@products_bp.delete("/<int:product_id>")
@require_auth
@require_permission("DELETE_PRODUCTS")
def delete_product_route(product_id: int):
    try:
        get_ledger().delete_product(product_id)
    except NotFoundError:
        return {"error": "Product not found"}, 404
    except StorageError as e:
        return {"error": str(e)}, 503

    return {"ok": True}, 200
