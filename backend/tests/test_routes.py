"""
HTTP API tests.

Verifies:
- Every protected route needs the live session's Bearer token
- Role permissions gate catalog, stock, report and backup routes
- Status codes: 201 create/sale, 400 bad input, 404 unknown, 409 conflicts, 429 lockout
- Inactivity expiry is reported distinctly from a bad token
"""

import pytest

from conftest import TEST_PASSWORDS, auth_headers


def _create(client, headers, **overrides):
    body = {
        "sku": "TOR001",
        "name": 'Tornillo Madera 2" Phillips',
        "category": "Tornillos y Pernos",
        "price": 0.25,
        "quantity": 150,
        "min_stock": 20,
        "barcode": "1234567890123",
        "supplier": "Ferretería Central",
    }
    body.update(overrides)
    return client.post("/api/products", json=body, headers=headers)


# =============================================================================
# SYSTEM
# =============================================================================


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["guard"]["state"] == "logged_out"


# =============================================================================
# AUTH
# =============================================================================


class TestAuthRoutes:

    def test_login_requires_fields(self, client, users):
        assert client.post("/api/auth/login", json={"username": "admin"}).status_code == 400

    def test_wrong_password_is_401(self, client, users):
        response = client.post("/api/auth/login", json={"username": "admin", "password": "nope"})
        assert response.status_code == 401
        assert response.get_json()["remaining_attempts"] == 2

    def test_lockout_is_429(self, client, users):
        for _ in range(2):
            client.post("/api/auth/login", json={"username": "admin", "password": "nope"})
        third = client.post("/api/auth/login", json={"username": "admin", "password": "nope"})
        assert third.status_code == 429
        assert third.get_json()["retry_after_minutes"] == 15

        blocked = client.post("/api/auth/login", json={"username": "admin", "password": "CG2024"})
        assert blocked.status_code == 429
        assert blocked.get_json()["error"].startswith("Account locked")

        status = client.get("/api/auth/lockout-status").get_json()
        assert status["locked"] is True
        assert status["failed_attempts"] == 3

    def test_protected_route_without_token(self, client):
        response = client.get("/api/products")
        assert response.status_code == 401
        assert response.get_json()["error"] == "Authentication required"

    def test_unknown_token_rejected(self, client, admin_headers):
        response = client.get("/api/products", headers=auth_headers("forged"))
        assert response.status_code == 401

    def test_session_and_permissions(self, client, guard, clerk_headers):
        session = client.get("/api/auth/session", headers=clerk_headers).get_json()
        assert session["user"] == {"username": "clerk", "role": "clerk"}
        assert session["time_left_seconds"] == 30 * 60

        perms = client.get("/api/auth/permissions", headers=clerk_headers).get_json()
        assert perms["can_process_sales"] is True
        assert perms["can_add_products"] is False

    def test_logout(self, client, admin_headers):
        assert client.post("/api/auth/logout", headers=admin_headers).status_code == 200
        response = client.get("/api/products", headers=admin_headers)
        assert response.status_code == 401
        assert response.get_json()["error"] == "Invalid or expired session"

    def test_inactivity_expiry(self, client, guard, clock, manager_headers):
        clock.advance(minutes=31)
        response = client.get("/api/products", headers=manager_headers)
        assert response.status_code == 401
        assert response.get_json()["error"] == "Session expired due to inactivity"

    def test_activity_extends_session(self, client, guard, clock, manager_headers):
        clock.advance(minutes=25)
        assert client.get("/api/products", headers=manager_headers).status_code == 200
        clock.advance(minutes=25)
        assert client.get("/api/products", headers=manager_headers).status_code == 200

    def test_change_password(self, client, clerk_headers):
        bad = client.post("/api/auth/change-password", headers=clerk_headers,
                          json={"old_password": "VENTA2024", "new_password": "123"})
        assert bad.status_code == 400
        ok = client.post("/api/auth/change-password", headers=clerk_headers,
                         json={"old_password": "VENTA2024", "new_password": "nueva123"})
        assert ok.status_code == 200

    def test_admin_creates_user(self, client, admin_headers):
        response = client.post("/api/auth/users", headers=admin_headers,
                               json={"username": "cajero2", "password": "secret1", "role": "clerk"})
        assert response.status_code == 201
        again = client.post("/api/auth/users", headers=admin_headers,
                            json={"username": "cajero2", "password": "secret1"})
        assert again.status_code == 409

    def test_manager_cannot_create_user(self, client, manager_headers):
        response = client.post("/api/auth/users", headers=manager_headers,
                               json={"username": "cajero2", "password": "secret1"})
        assert response.status_code == 403
        assert response.get_json()["required_permission"] == "MANAGE_USERS"

    def test_security_log(self, client, admin_headers):
        body = client.get("/api/auth/security-log", headers=admin_headers).get_json()
        assert body["events"][0]["event_type"] == "LOGIN_SUCCESS"


# =============================================================================
# PRODUCTS
# =============================================================================


class TestProductRoutes:

    def test_crud_flow(self, client, admin_headers):
        created = _create(client, admin_headers, sku="tor001")
        assert created.status_code == 201
        product = created.get_json()
        assert product["sku"] == "TOR001"
        assert product["price_cents"] == 25

        product_id = product["id"]
        fetched = client.get(f"/api/products/{product_id}", headers=admin_headers)
        assert fetched.get_json()["name"] == 'Tornillo Madera 2" Phillips'

        updated = client.put(f"/api/products/{product_id}", headers=admin_headers, json={"price": "0.30"})
        assert updated.status_code == 200
        assert updated.get_json()["price"] == 0.30
        assert updated.get_json()["quantity"] == 150

        assert client.delete(f"/api/products/{product_id}", headers=admin_headers).get_json() == {"ok": True}
        assert client.get(f"/api/products/{product_id}", headers=admin_headers).status_code == 404

    def test_duplicate_sku_is_409(self, client, admin_headers):
        _create(client, admin_headers)
        response = _create(client, admin_headers, barcode="9999999999")
        assert response.status_code == 409

    @pytest.mark.parametrize("overrides", [
        {"price": -1},
        {"quantity": "12.5"},
        {"sku": "A"},
        {"id": 99},
    ])
    def test_invalid_product_is_400(self, client, admin_headers, overrides):
        assert _create(client, admin_headers, **overrides).status_code == 400

    def test_missing_fields_is_400(self, client, admin_headers):
        response = client.post("/api/products", json={"sku": "ABC123"}, headers=admin_headers)
        assert response.status_code == 400
        assert "Missing required fields" in response.get_json()["error"]

    def test_update_unknown_is_404(self, client, admin_headers):
        assert client.put("/api/products/999", headers=admin_headers, json={"name": "Nada"}).status_code == 404

    def test_search_and_lookup(self, client, admin_headers):
        _create(client, admin_headers)
        _create(client, admin_headers, sku="MAR001", name="Martillo", category="Herramientas",
                barcode=None, quantity=3, min_stock=5)

        search = client.get("/api/products?q=martillo", headers=admin_headers).get_json()
        assert [p["sku"] for p in search["items"]] == ["MAR001"]

        low = client.get("/api/products?low_stock=true", headers=admin_headers).get_json()
        assert low["count"] == 1

        by_barcode = client.get("/api/products/lookup/1234567890123", headers=admin_headers)
        assert by_barcode.get_json()["sku"] == "TOR001"
        assert client.get("/api/products/lookup/NOPE", headers=admin_headers).status_code == 404

        categories = client.get("/api/products/categories", headers=admin_headers).get_json()
        assert categories["categories"] == ["Tornillos y Pernos", "Herramientas"]

        suggestions = client.get("/api/products/suggestions?q=mar", headers=admin_headers).get_json()
        assert [s["sku"] for s in suggestions["suggestions"]] == ["MAR001"]


class TestProductPermissions:

    def test_clerk_can_read_but_not_write(self, client, clerk_headers):
        assert client.get("/api/products", headers=clerk_headers).status_code == 200
        assert _create(client, clerk_headers).status_code == 403
        assert client.delete("/api/products/1", headers=clerk_headers).status_code == 403

    def test_manager_cannot_delete(self, client, manager_headers):
        product_id = _create(client, manager_headers).get_json()["id"]
        response = client.delete(f"/api/products/{product_id}", headers=manager_headers)
        assert response.status_code == 403
        assert response.get_json()["required_permission"] == "DELETE_PRODUCTS"


# =============================================================================
# STOCK MOVEMENTS
# =============================================================================


class TestInventoryRoutes:

    @pytest.fixture
    def stocked(self, ledger, add_product):
        return add_product()

    def test_sale(self, client, stocked, clerk_headers):
        response = client.post("/api/inventory/sale", headers=clerk_headers,
                               json={"identifier": "tor001", "quantity": 10})
        assert response.status_code == 201
        body = response.get_json()
        assert body["sale"]["total"] == 2.5
        assert body["product"]["quantity"] == 140

    def test_sale_by_barcode(self, client, stocked, clerk_headers):
        response = client.post("/api/inventory/sale", headers=clerk_headers,
                               json={"barcode": "1234567890123", "quantity": 1})
        assert response.status_code == 201

    def test_oversell_is_409(self, client, stocked, clerk_headers):
        response = client.post("/api/inventory/sale", headers=clerk_headers,
                               json={"identifier": "TOR001", "quantity": 151})
        assert response.status_code == 409
        body = response.get_json()
        assert (body["available"], body["requested"]) == (150, 151)

    @pytest.mark.parametrize("quantity", [0, -1, "12.5", "1e3", None])
    def test_bad_sale_quantity_is_400(self, client, stocked, clerk_headers, quantity):
        response = client.post("/api/inventory/sale", headers=clerk_headers,
                               json={"identifier": "TOR001", "quantity": quantity})
        assert response.status_code == 400

    def test_unknown_product_is_404(self, client, stocked, clerk_headers):
        response = client.post("/api/inventory/sale", headers=clerk_headers,
                               json={"identifier": "NOPE01", "quantity": 1})
        assert response.status_code == 404

    def test_clerk_cannot_restock(self, client, stocked, clerk_headers):
        response = client.post("/api/inventory/restock", headers=clerk_headers,
                               json={"identifier": "TOR001", "quantity": 5})
        assert response.status_code == 403

    def test_restock_and_adjust(self, client, stocked, manager_headers):
        restocked = client.post("/api/inventory/restock", headers=manager_headers,
                                json={"sku": "TOR001", "quantity": 50})
        assert restocked.get_json()["quantity"] == 200

        adjusted = client.post("/api/inventory/adjust", headers=manager_headers,
                               json={"product_id": stocked.id, "adjustment": -20})
        assert adjusted.status_code == 200
        assert adjusted.get_json()["quantity"] == 180

        negative = client.post("/api/inventory/adjust", headers=manager_headers,
                               json={"product_id": stocked.id, "adjustment": -181})
        assert negative.status_code == 409

        not_int = client.post("/api/inventory/adjust", headers=manager_headers,
                              json={"product_id": "1", "adjustment": 1})
        assert not_int.status_code == 400

    def test_sales_ledger(self, client, stocked, manager_headers):
        client.post("/api/inventory/sale", headers=manager_headers, json={"identifier": "TOR001", "quantity": 2})
        body = client.get("/api/inventory/sales?sku=tor001", headers=manager_headers).get_json()
        assert body["count"] == 1
        assert body["items"][0]["quantity"] == 2


# =============================================================================
# REPORTS / BACKUP
# =============================================================================


class TestReportAndBackupRoutes:

    def test_statistics_visible_to_clerk(self, client, ledger, add_product, clerk_headers):
        add_product()
        body = client.get("/api/reports/statistics", headers=clerk_headers).get_json()
        assert body["total_products"] == 1
        assert client.get("/api/reports/sales", headers=clerk_headers).status_code == 403

    def test_sales_report_bad_group(self, client, manager_headers):
        response = client.get("/api/reports/sales?group_by=year", headers=manager_headers)
        assert response.status_code == 400

    def test_export(self, client, ledger, add_product, manager_headers):
        add_product()
        response = client.get("/api/backup/export", headers=manager_headers)
        assert response.status_code == 200
        assert "stockledger-backup-" in response.headers["Content-Disposition"]
        assert response.get_json()["metadata"]["totalProducts"] == 1

    def test_clerk_cannot_export(self, client, clerk_headers):
        assert client.get("/api/backup/export", headers=clerk_headers).status_code == 403

    def test_import(self, client, ledger, add_product, manager_headers):
        add_product()
        document = {"products": [
            {"sku": "NEW001", "name": "Nuevo", "category": "Varios", "price": 1, "quantity": 4},
        ], "sales": []}
        response = client.post("/api/backup/import", headers=manager_headers, json=document)
        assert response.status_code == 200
        assert response.get_json()["imported"] == {"products": 1, "sales": 0}
        assert [p.sku for p in ledger.get_all_products()] == ["NEW001"]

    def test_invalid_import_is_400(self, client, ledger, add_product, manager_headers):
        add_product()
        response = client.post("/api/backup/import", headers=manager_headers,
                               json={"products": [{"sku": "NEW001"}]})
        assert response.status_code == 400
        assert response.get_json()["errors"][0].startswith("Product 1:")
        assert [p.sku for p in ledger.get_all_products()] == ["TOR001"]

    def test_audit_actor_comes_from_session(self, client, ledger, add_product, manager_headers):
        from stockledger.services.audit_service import list_audit_events

        add_product()
        client.post("/api/inventory/restock", headers=manager_headers, json={"sku": "TOR001", "quantity": 1})
        latest = list_audit_events(limit=1)[0]
        assert latest.event_type == "productRestocked"
        assert latest.actor == "manager"


def test_default_passwords_match_fixtures():
    from stockledger.services.auth_service import DEFAULT_USERS

    assert {name: password for name, password, _ in DEFAULT_USERS} == TEST_PASSWORDS
