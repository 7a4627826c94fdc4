"""
Backup export/import tests.

Verifies:
- Export document shape (version, camelCase rows, metadata)
- Import validation reports every problem and changes nothing
- A clean import replaces products and sales and keeps ids
- Backup filenames and recommendations
"""

import re
from datetime import datetime
from decimal import Decimal

import pytest

from stockledger.services import backup_service
from stockledger.services.backup_service import ImportValidationError


def _document(products=None, sales=None):
    return {
        "version": 1,
        "exportDate": "2024-01-15T10:00:00.000Z",
        "products": products if products is not None else [
            {
                "id": 7, "sku": "mar001", "name": "Martillo Carpintero 16oz",
                "category": "Herramientas", "price": 12.99, "quantity": 25,
                "minStock": 5, "barcode": "2345678901234", "supplier": "Herramientas Pro",
                "createdAt": "2024-01-01T00:00:00.000Z",
            },
            {"sku": "PIN001", "name": "Pintura Blanca 1L", "category": "Pinturas", "price": "8.50", "quantity": 2},
        ],
        "sales": sales if sales is not None else [
            {"productId": 7, "sku": "MAR001", "name": "Martillo Carpintero 16oz",
             "quantity": 2, "unitPrice": 12.99, "total": 25.98, "date": "2024-01-10T15:30:00Z"},
        ],
    }


# =============================================================================
# EXPORT
# =============================================================================


class TestExport:

    def test_export_shape(self, ledger, add_product):
        add_product()
        ledger.process_sale("TOR001", 3)

        doc = backup_service.export_data(ledger, now=datetime(2024, 1, 15, 12, 0, 0))
        assert doc["version"] == 1
        assert doc["exportDate"] == "2024-01-15T12:00:00.000Z"
        assert doc["metadata"] == {"totalProducts": 1, "totalSales": 1}

        product = doc["products"][0]
        assert product["sku"] == "TOR001"
        assert product["minStock"] == 20
        assert product["quantity"] == 147
        assert product["price"] == 0.25

        sale = doc["sales"][0]
        assert sale["productId"] == product["id"]
        assert sale["unitPrice"] == 0.25
        assert sale["total"] == 0.75

    def test_ledger_delegates_export(self, ledger, add_product):
        add_product()
        assert ledger.export_data()["metadata"]["totalProducts"] == 1


# =============================================================================
# VALIDATION
# =============================================================================


class TestValidateImport:

    def test_clean_document(self):
        assert backup_service.validate_import_data(_document()) == []

    def test_not_an_object(self):
        assert backup_service.validate_import_data([1, 2]) == ["Invalid import data"]

    def test_bad_structures(self):
        errors = backup_service.validate_import_data({"products": "nope", "sales": 5})
        assert "Invalid products structure" in errors
        assert "Invalid sales structure" in errors

    def test_all_row_errors_reported(self):
        errors = backup_service.validate_import_data(_document(products=[
            {"sku": "AAA001", "name": "Valid", "category": "X", "price": 1, "quantity": 1},
            {"sku": "BBB001", "name": "No price", "category": "X", "quantity": 1},
            {"sku": "CCC001", "name": "Negative", "category": "X", "price": 1, "quantity": -4},
            {"sku": "aaa001", "name": "Dup sku", "category": "X", "price": 1, "quantity": 1},
        ], sales=[{"sku": "AAA001", "quantity": 0, "unitPrice": 1, "date": "2024-01-01"}]))

        assert len(errors) == 4
        assert errors[0] == "Product 2: Missing fields: price"
        assert errors[1].startswith("Product 3:")
        assert errors[2].startswith("Product 4: duplicate sku AAA001")
        assert errors[3].startswith("Sale 1:")

    def test_duplicate_barcode_and_id(self):
        errors = backup_service.validate_import_data(_document(products=[
            {"id": 1, "sku": "AAA001", "name": "One", "category": "X", "price": 1, "quantity": 1, "barcode": "11111111"},
            {"id": 1, "sku": "BBB001", "name": "Two", "category": "X", "price": 1, "quantity": 1},
            {"id": 2, "sku": "CCC001", "name": "Three", "category": "X", "price": 1, "quantity": 1, "barcode": "11111111"},
        ], sales=[]))
        assert [e.split(":")[0] for e in errors] == ["Product 2", "Product 3"]

    def test_sale_needs_a_price(self):
        errors = backup_service.validate_import_data(_document(sales=[
            {"sku": "MAR001", "quantity": 1, "date": "2024-01-01T00:00:00Z"},
        ]))
        assert errors == ["Sale 1: Missing fields: unitPrice"]


# =============================================================================
# IMPORT
# =============================================================================


class TestImport:

    def test_import_replaces_everything(self, ledger, add_product):
        add_product()
        summary = backup_service.import_data(ledger, _document())
        assert summary == {"products": 2, "sales": 1}

        assert ledger.get_product_by_sku("TOR001") is None
        hammer = ledger.get_product_by_sku("MAR001")
        assert hammer.id == 7
        assert hammer.min_stock == 5
        assert hammer.created_at == datetime(2024, 1, 1)

        paint = ledger.get_product_by_sku("PIN001")
        assert paint.id == 8
        assert paint.min_stock == 0
        assert paint.is_low_stock is False

        sales = ledger.get_sales()
        assert len(sales) == 1
        assert sales[0].date == datetime(2024, 1, 10, 15, 30)

    def test_ids_continue_after_import(self, ledger, add_product):
        backup_service.import_data(ledger, _document())
        created = add_product()
        assert created.id == 9

    def test_invalid_import_changes_nothing(self, ledger, add_product):
        add_product()
        with pytest.raises(ImportValidationError) as exc_info:
            backup_service.import_data(ledger, {"products": [{"sku": "X"}]})
        assert exc_info.value.errors
        assert [p.sku for p in ledger.get_all_products()] == ["TOR001"]

    def test_import_emits_data_imported(self, ledger):
        seen = []
        ledger.on("dataImported", lambda event, payload: seen.append(payload))
        ledger.import_data(_document())
        assert seen == [{"products": 2, "sales": 1}]

    def test_export_then_import_keeps_catalog(self, ledger, add_product):
        add_product()
        add_product(sku="MAR001", name="Martillo", barcode=None)
        ledger.process_sale("MAR001", 1)
        doc = ledger.export_data()

        ledger.delete_product(ledger.get_product_by_sku("TOR001").id)
        backup_service.import_data(ledger, doc)
        assert sorted(p.sku for p in ledger.get_all_products()) == ["MAR001", "TOR001"]
        assert ledger.count_sales() == 1

    def test_sale_total_above_unit_price_cap_round_trips(self, ledger, add_product):
        add_product(price=250, quantity=10000)
        ledger.process_sale("TOR001", 5000)
        doc = ledger.export_data()
        assert backup_service.validate_import_data(doc) == []

        backup_service.import_data(ledger, doc)
        [sale] = ledger.get_sales()
        assert sale.total == Decimal("1250000.00")
        assert sale.unit_price == Decimal("250.00")

    def test_bad_sale_total_is_reported_as_total(self):
        sale = {"sku": "MAR001", "quantity": 1, "total": -1, "date": "2024-01-10T15:30:00.000Z"}
        errors = backup_service.validate_import_data(_document(sales=[sale]))
        assert errors == ["Sale 1: total must be >= 0"]


# =============================================================================
# FILENAMES / RECOMMENDATIONS
# =============================================================================


class TestHelpers:

    def test_backup_filename(self):
        name = backup_service.generate_backup_filename(datetime(2024, 1, 15, 10, 30, 0))
        assert re.fullmatch(r"stockledger-backup-2024-01-15T10-30-00-[a-z0-9]{6}\.json", name)

    def test_no_recommendations_for_healthy_catalog(self, ledger, add_product):
        add_product()
        assert backup_service.get_backup_recommendations(ledger) == []

    def test_low_stock_warning(self, ledger, add_product):
        add_product(quantity=20)
        recs = backup_service.get_backup_recommendations(ledger)
        assert recs == [{
            "type": "warning",
            "message": "1 products with low stock need attention",
            "action": "restock",
        }]

    def test_weekly_backup_for_large_catalog(self, ledger):
        backup_service.import_data(ledger, _document(products=[
            {"sku": f"SKU{i:03d}", "name": f"Item {i}", "category": "X", "price": 1, "quantity": 10}
            for i in range(101)
        ], sales=[]))
        recs = backup_service.get_backup_recommendations(ledger)
        assert [r["type"] for r in recs] == ["info"]
