# Overview: Flask API routes for backup export and import.

from flask import Blueprint, request, current_app

from ..decorators import require_auth, require_permission
from ..extensions import get_ledger
from ..services import backup_service
from ..services.backup_service import ImportValidationError
from ..services.inventory_store import StorageError

backup_bp = Blueprint("backup", __name__, url_prefix="/api/backup")


@backup_bp.get("/export")
@require_auth
@require_permission("EXPORT_DATA")
def export_route():
    try:
        data = backup_service.export_data(get_ledger())
    except StorageError as e:
        return {"error": str(e)}, 503
    filename = backup_service.generate_backup_filename()
    return data, 200, {"Content-Disposition": f'attachment; filename="{filename}"'}


@backup_bp.post("/import")
@require_auth
@require_permission("IMPORT_DATA")
def import_route():
    """Replace every product and sale with the posted backup document."""
    payload = request.get_json(silent=True)

    try:
        summary = backup_service.import_data(get_ledger(), payload)
    except ImportValidationError as e:
        return {"error": "Invalid import data", "errors": e.errors}, 400
    except StorageError as e:
        return {"error": str(e)}, 503
    except Exception:
        current_app.logger.exception("Import failed")
        return {"error": "Internal server error"}, 500

    return {"ok": True, "imported": summary}, 200
