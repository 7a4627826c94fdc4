# Overview: Service-layer operations for reporting; read-only summaries over the catalog ledger.

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime
from decimal import Decimal

from ..time_utils import parse_iso_datetime, to_utc_z, utcnow
from .catalog_service import CatalogLedger


class ReportError(ValueError):
    """Raised when report parameters are invalid."""
    pass


GROUP_FORMATS = {
    "day": "%Y-%m-%d",
    "week": "%Y-W%W",
    "month": "%Y-%m",
}


def _parse_range(start: str | None, end: str | None) -> tuple[datetime | None, datetime | None]:
    try:
        start_dt = parse_iso_datetime(start) if start else None
        end_dt = parse_iso_datetime(end) if end else None
    except ValueError:
        raise ReportError("start and end must be ISO-8601 timestamps")
    if start_dt and end_dt and start_dt > end_dt:
        raise ReportError("start must be before end")
    return start_dt, end_dt


def inventory_report(ledger: CatalogLedger) -> dict:
    stats = ledger.get_statistics()
    return {
        "generated_at": to_utc_z(utcnow()),
        "statistics": stats.to_dict(),
        "products": [p.to_dict() for p in ledger.get_all_products()],
    }


def low_stock_report(ledger: CatalogLedger) -> dict:
    rows = []
    for p in ledger.get_low_stock_products():
        row = p.to_dict()
        # Units needed to get back above the minimum
        row["shortfall"] = max(p.min_stock - p.quantity, 0) + 1
        rows.append(row)
    rows.sort(key=lambda r: (r["quantity"] - r["min_stock"], r["sku"]))
    return {
        "generated_at": to_utc_z(utcnow()),
        "count": len(rows),
        "products": rows,
    }


def sales_report(
    ledger: CatalogLedger,
    *,
    start: str | None = None,
    end: str | None = None,
    group_by: str = "day",
    top: int = 10,
) -> dict:
    if group_by not in GROUP_FORMATS:
        raise ReportError("group_by must be day, week, or month")
    start_dt, end_dt = _parse_range(start, end)
    sales = ledger.get_sales(start=start_dt, end=end_dt)

    periods: "OrderedDict[str, dict]" = OrderedDict()
    products: dict[str, dict] = {}
    units = 0
    revenue = Decimal("0")
    for sale in sales:
        units += sale.quantity
        revenue += sale.total

        key = sale.date.strftime(GROUP_FORMATS[group_by])
        period = periods.setdefault(key, {"period": key, "sales_count": 0, "items_sold": 0, "revenue": Decimal("0")})
        period["sales_count"] += 1
        period["items_sold"] += sale.quantity
        period["revenue"] += sale.total

        item = products.setdefault(sale.sku, {"sku": sale.sku, "name": sale.name, "quantity": 0, "revenue": Decimal("0")})
        item["quantity"] += sale.quantity
        item["revenue"] += sale.total
        item["name"] = sale.name

    best_sellers = sorted(products.values(), key=lambda r: (-r["quantity"], r["sku"]))[:top]
    return {
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        "group_by": group_by,
        "sales_count": len(sales),
        "items_sold": units,
        "revenue": float(revenue),
        "periods": [{**p, "revenue": float(p["revenue"])} for p in periods.values()],
        "best_sellers": [{**r, "revenue": float(r["revenue"])} for r in best_sellers],
    }
