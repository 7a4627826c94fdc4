# Overview: Flask API routes for reports operations; parses input and returns JSON responses.

from flask import Blueprint, request

from ..decorators import require_auth, require_permission
from ..extensions import get_ledger
from ..services import reporting_service
from ..services.backup_service import get_backup_recommendations
from ..services.reporting_service import ReportError

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/statistics")
@require_auth
@require_permission("VIEW_INVENTORY")
def statistics_route():
    return get_ledger().get_statistics().to_dict()


@reports_bp.get("/inventory")
@require_auth
@require_permission("VIEW_REPORTS")
def inventory_report_route():
    return reporting_service.inventory_report(get_ledger())


@reports_bp.get("/low-stock")
@require_auth
@require_permission("VIEW_REPORTS")
def low_stock_report_route():
    return reporting_service.low_stock_report(get_ledger())


@reports_bp.get("/sales")
@require_auth
@require_permission("VIEW_REPORTS")
def sales_report_route():
    try:
        return reporting_service.sales_report(
            get_ledger(),
            start=request.args.get("start"),
            end=request.args.get("end"),
            group_by=request.args.get("group_by", "day"),
        )
    except ReportError as e:
        return {"error": str(e)}, 400


@reports_bp.get("/recommendations")
@require_auth
@require_permission("VIEW_REPORTS")
def recommendations_route():
    return {"recommendations": get_backup_recommendations(get_ledger())}
