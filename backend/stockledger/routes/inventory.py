# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

"""
Stock movement routes: sale, restock, manual adjustment, and the sale ledger.

Quantities must be integers; "12.5" and "1e3" are rejected with 400.
"""
from flask import Blueprint, request, current_app

from ..decorators import require_auth, require_permission
from ..extensions import get_ledger
from ..services.catalog_service import InsufficientStockError, NotFoundError
from ..services.inventory_store import StorageError
from ..time_utils import parse_iso_datetime
from ..validation import ConflictError, ValidationError, is_missing

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def _identifier(payload: dict) -> str:
    identifier = payload.get("identifier") or payload.get("sku") or payload.get("barcode")
    if is_missing(identifier):
        raise ValidationError("identifier (SKU or barcode) is required")
    return str(identifier)


@inventory_bp.post("/sale")
@require_auth
@require_permission("PROCESS_SALES")
def sale_route():
    """
    Sell units of one product.

    Body: {"identifier": "TOR001" | "1234567890123", "quantity": 10}
    """
    try:
        payload = _json_body()
        result = get_ledger().process_sale(_identifier(payload), payload.get("quantity"))
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except InsufficientStockError as e:
        return {
            "error": str(e),
            "available": e.available,
            "requested": e.requested,
        }, 409
    except StorageError as e:
        return {"error": str(e)}, 503
    except Exception:
        current_app.logger.exception("Sale failed")
        return {"error": "Internal server error"}, 500

    return result.to_dict(), 201


@inventory_bp.post("/restock")
@require_auth
@require_permission("RESTOCK")
def restock_route():
    try:
        payload = _json_body()
        product = get_ledger().restock_product(_identifier(payload), payload.get("quantity"))
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except StorageError as e:
        return {"error": str(e)}, 503
    except Exception:
        current_app.logger.exception("Restock failed")
        return {"error": "Internal server error"}, 500

    return product.to_dict(), 200


@inventory_bp.post("/adjust")
@require_auth
@require_permission("EDIT_PRODUCTS")
def adjust_route():
    """
    Manual stock correction by product id.

    Body: {"product_id": 1, "adjustment": -3}
    """
    try:
        payload = _json_body()
        product_id = payload.get("product_id")
        if isinstance(product_id, bool) or not isinstance(product_id, int):
            raise ValidationError("product_id must be an integer")
        product = get_ledger().adjust_stock(product_id, payload.get("adjustment"))
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except StorageError as e:
        return {"error": str(e)}, 503
    except Exception:
        current_app.logger.exception("Stock adjustment failed")
        return {"error": "Internal server error"}, 500

    return product.to_dict(), 200


@inventory_bp.get("/sales")
@require_auth
@require_permission("VIEW_REPORTS")
def list_sales_route():
    """
    Query params:
    - start, end: ISO-8601 (optional, inclusive)
    - sku: str (optional)
    """
    try:
        start = parse_iso_datetime(request.args.get("start"))
        end = parse_iso_datetime(request.args.get("end"))
    except ValueError:
        return {"error": "start and end must be ISO-8601 timestamps"}, 400

    try:
        sales = get_ledger().get_sales(start=start, end=end, sku=request.args.get("sku"))
    except StorageError as e:
        return {"error": str(e)}, 503
    return {"items": [s.to_dict() for s in sales], "count": len(sales)}
