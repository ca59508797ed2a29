"""
HTTP-level tests: authentication, role enforcement and the sale/return flow
through the JSON API.
"""

import pytest

from posledger.services import auth_service, timekeeping_service

from conftest import PASSWORD, auth_headers, get_auth_token


pytestmark = pytest.mark.api


# =============================================================================
# AUTH REQUIRED
# =============================================================================

class TestAuthRequired:

    @pytest.mark.parametrize("method,path", [
        ("get", "/api/products"),
        ("post", "/api/sales"),
        ("get", "/api/sales"),
        ("post", "/api/returns"),
        ("get", "/api/returns/stats"),
        ("get", "/api/customers"),
        ("get", "/api/hr/dashboard"),
        ("get", "/api/reports/sales"),
        ("get", "/api/auth/me"),
    ])
    def test_requires_token(self, client, db_session, method, path):
        response = getattr(client, method)(path)
        assert response.status_code == 401

    def test_invalid_token(self, client, db_session):
        response = client.get("/api/auth/me", headers=auth_headers("not-a-token"))
        assert response.status_code == 401


# =============================================================================
# ROLE ENFORCEMENT
# =============================================================================

class TestRoles:

    def test_cashier_cannot_create_product(self, client, cashier_headers):
        response = client.post("/api/products", json={
            "sku": "X-1", "name": "X", "selling_price_cents": 100,
        }, headers=cashier_headers)
        assert response.status_code == 403
        assert response.json["required_roles"] == ["manager"]

    def test_cashier_cannot_view_payroll(self, client, cashier_headers):
        assert client.get("/api/hr/payroll-summaries", headers=cashier_headers).status_code == 403

    def test_manager_can_create_product(self, client, manager_headers):
        response = client.post("/api/products", json={
            "sku": "X-1", "name": "X", "selling_price_cents": 100, "stock_quantity": 3,
        }, headers=manager_headers)
        assert response.status_code == 201
        assert response.json["product"]["available_quantity"] == 3

    def test_admin_passes_every_role_check(self, client, admin_headers):
        assert client.get("/api/hr/dashboard", headers=admin_headers).status_code == 200
        assert client.get("/api/returns/stats", headers=admin_headers).status_code == 200

    def test_only_admin_creates_users(self, client, manager_headers):
        response = client.post("/api/auth/users", json={
            "username": "newbie", "email": "newbie@pos.local",
            "password": PASSWORD, "name": "Newbie",
        }, headers=manager_headers)
        assert response.status_code == 403

    def test_deactivated_user_loses_token(self, client, admin_headers, cashier):
        token = get_auth_token(client, "cashier")
        response = client.post(f"/api/auth/users/{cashier.id}/deactivate", headers=admin_headers)
        assert response.status_code == 200
        assert response.json["user"]["is_active"] is False

        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401


# =============================================================================
# LOGIN / LOGOUT
# =============================================================================

class TestLogin:

    def test_bad_password(self, client, cashier):
        response = client.post("/api/auth/login", json={"username": "cashier", "password": "wrong"})
        assert response.status_code == 401

    def test_cashier_login_starts_work_session(self, client, cashier):
        response = client.post("/api/auth/login", json={"username": "cashier", "password": PASSWORD})
        assert response.status_code == 200
        assert response.json["work_session"]["is_active"] is True
        assert timekeeping_service.get_current_session(cashier.id) is not None

    def test_manager_login_has_no_work_session(self, client, manager):
        response = client.post("/api/auth/login", json={"username": "manager", "password": PASSWORD})
        assert response.status_code == 200
        assert response.json["work_session"] is None

    def test_logout_closes_work_session_and_revokes_token(self, client, cashier):
        token = get_auth_token(client, "cashier")
        response = client.post("/api/auth/logout", headers=auth_headers(token))
        assert response.status_code == 200
        assert response.json["work_session"]["notes"] == timekeeping_service.LOGOUT_NOTE
        assert timekeeping_service.get_current_session(cashier.id) is None

        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401

    def test_barcode_login(self, client, cashier):
        code = auth_service.set_barcode(cashier.id)
        response = client.post("/api/auth/barcode-login", json={"barcode": code})
        assert response.status_code == 200
        assert response.json["user"]["id"] == cashier.id

        assert client.post("/api/auth/barcode-login", json={"barcode": "NOPE"}).status_code == 401


# =============================================================================
# SALE + RETURN FLOW
# =============================================================================

class TestSaleFlow:

    def _sale(self, client, headers, product, quantity=3):
        return client.post("/api/sales", json={
            "items": [{
                "product_id": product.id,
                "quantity": quantity,
                "unit_price_cents": product.selling_price_cents,
            }],
            "payment_method": "cash",
            "amount_paid_cents": product.selling_price_cents * quantity,
        }, headers=headers)

    def test_sale_then_return(self, client, cashier_headers, make_product):
        product = make_product(stock=10, buying=3000, selling=5000)

        response = self._sale(client, cashier_headers, product)
        assert response.status_code == 201
        sale = response.json["sales"][0]
        assert sale["total_profit_cents"] == 6000
        assert response.json["summary"]["receipt_number"] == "RCP-000001"

        eligibility = client.get(
            f"/api/returns/eligibility?sale_id={sale['id']}&product_id={product.id}",
            headers=cashier_headers,
        )
        assert eligibility.status_code == 200
        assert eligibility.json["remaining_quantity"] == 3

        response = client.post("/api/returns", json={
            "sale_id": sale["id"],
            "product_id": product.id,
            "quantity_returned": 1,
            "return_reason": "Damaged",
        }, headers=cashier_headers)
        assert response.status_code == 201
        assert response.json["return"]["refund_amount_cents"] == 5000
        assert response.json["sale"]["return_status"] == "partial"
        assert response.json["sale"]["total_profit_cents"] == 4000

        detail = client.get(f"/api/sales/{sale['id']}", headers=cashier_headers)
        assert len(detail.json["returns"]) == 1

    def test_oversell_is_409(self, client, cashier_headers, make_product):
        product = make_product(stock=2)
        response = self._sale(client, cashier_headers, product, quantity=3)
        assert response.status_code == 409
        assert response.json["details"]["items"][0]["available_quantity"] == 2

    def test_over_return_is_409(self, client, cashier_headers, make_product):
        product = make_product(stock=10)
        sale = self._sale(client, cashier_headers, product, quantity=1).json["sales"][0]
        response = client.post("/api/returns", json={
            "sale_id": sale["id"], "product_id": product.id, "quantity_returned": 2,
        }, headers=cashier_headers)
        assert response.status_code == 409

    def test_invalid_sale_body(self, client, cashier_headers):
        response = client.post("/api/sales", json={"items": [], "payment_method": "cash"}, headers=cashier_headers)
        assert response.status_code == 400

    def test_receipt_lookup(self, client, cashier_headers, make_product):
        product = make_product(stock=10)
        self._sale(client, cashier_headers, product, quantity=1)
        response = client.get("/api/sales/receipts/RCP-000001", headers=cashier_headers)
        assert response.status_code == 200
        assert response.json["receipt"]["total_quantity"] == 1

        assert client.get("/api/sales/receipts/RCP-999999", headers=cashier_headers).status_code == 404


# =============================================================================
# HR + REPORTS
# =============================================================================

class TestPayrollApi:

    def test_payroll_info_missing_is_404(self, client, manager_headers, cashier):
        response = client.post("/api/hr/payroll-summaries", json={
            "user_id": cashier.id, "month": 3, "year": 2025,
        }, headers=manager_headers)
        assert response.status_code == 404

    def test_non_numeric_user_id_is_400(self, client, manager_headers):
        response = client.post("/api/hr/payroll-summaries", json={
            "user_id": "abc", "month": 3, "year": 2025,
        }, headers=manager_headers)
        assert response.status_code == 400
        assert "user_id" in response.json["error"]

    def test_set_info_and_calculate(self, client, admin_headers, cashier):
        response = client.put(f"/api/hr/payroll-info/{cashier.id}", json={
            "hourly_rate_cents": 1000, "position": "Cashier",
        }, headers=admin_headers)
        assert response.status_code == 200

        response = client.post("/api/hr/payroll-summaries", json={
            "user_id": cashier.id, "month": 3, "year": 2025,
        }, headers=admin_headers)
        assert response.status_code == 200
        summary = response.json["payroll_summary"]
        assert summary["total_pay_cents"] == 0

        approve = client.post(f"/api/hr/payroll-summaries/{summary['id']}/approve", headers=admin_headers)
        assert approve.status_code == 200
        assert approve.json["payroll_summary"]["status"] == "approved"


class TestReports:

    def test_sales_summary(self, client, manager_headers, make_product, sell, cashier):
        product = make_product(stock=10)
        sell(product, 2, cashier)
        response = client.get("/api/reports/sales", headers=manager_headers)
        assert response.status_code == 200
        assert response.json["report"]["total_revenue_cents"] == 10000
        assert response.json["report"]["total_items_sold"] == 2

    def test_top_products_and_daily(self, client, manager_headers, make_product, sell, cashier):
        popular = make_product(stock=10, name="Popular")
        quiet = make_product(stock=10, name="Quiet")
        sell(popular, 3, cashier)
        sell(quiet, 1, cashier)

        top = client.get("/api/reports/top-products?limit=5", headers=manager_headers)
        assert top.status_code == 200
        assert [p["product_id"] for p in top.json["products"]] == [popular.id, quiet.id]
        assert top.json["products"][0]["total_quantity_sold"] == 3

        daily = client.get("/api/reports/daily?days=7", headers=manager_headers)
        assert daily.status_code == 200
        assert sum(d["items_sold"] for d in daily.json["days"]) == 4

    def test_cashier_cannot_read_reports(self, client, cashier_headers):
        assert client.get("/api/reports/sales", headers=cashier_headers).status_code == 403


class TestCustomersApi:

    def test_create_and_adjust(self, client, cashier_headers, manager_headers, program):
        response = client.post("/api/customers", json={
            "first_name": "Lin", "last_name": "Chen", "loyalty_program_id": program.id,
        }, headers=cashier_headers)
        assert response.status_code == 201
        customer_id = response.json["customer"]["id"]

        denied = client.post(f"/api/customers/{customer_id}/points", json={
            "points": 10, "reason": "Goodwill",
        }, headers=cashier_headers)
        assert denied.status_code == 403

        adjusted = client.post(f"/api/customers/{customer_id}/points", json={
            "points": 10, "reason": "Goodwill",
        }, headers=manager_headers)
        assert adjusted.status_code == 200
        assert adjusted.json["transaction"]["points"] == 10

        over = client.post(f"/api/customers/{customer_id}/points", json={
            "points": -11, "reason": "Correction",
        }, headers=manager_headers)
        assert over.status_code == 409


class TestPurchasingApi:

    def test_order_receive_restocks(self, client, manager_headers, make_product):
        product = make_product(stock=0, buying=3000)

        response = client.post("/api/suppliers", json={"name": "Acme Wholesale"}, headers=manager_headers)
        assert response.status_code == 201
        supplier_id = response.json["supplier"]["id"]

        response = client.post("/api/purchase-orders", json={
            "supplier_id": supplier_id,
            "items": [{"product_id": product.id, "quantity_ordered": 6, "unit_cost_cents": 2500}],
        }, headers=manager_headers)
        assert response.status_code == 201
        order = response.json["purchase_order"]
        assert order["status"] == "pending"
        assert order["total_amount_cents"] == 15000
        item_id = order["items"][0]["id"]

        response = client.post(f"/api/purchase-orders/{order['id']}/receive", json={
            "items": [{"id": item_id, "quantity_received": 7}],
        }, headers=manager_headers)
        assert response.status_code == 409

        response = client.post(f"/api/purchase-orders/{order['id']}/receive", json={}, headers=manager_headers)
        assert response.status_code == 200
        assert response.json["purchase_order"]["status"] == "received"

        product_body = client.get(f"/api/products/{product.id}", headers=manager_headers).json["product"]
        assert product_body["available_quantity"] == 6
        assert product_body["buying_price_cents"] == 2500

        cancel = client.post(f"/api/purchase-orders/{order['id']}/cancel", headers=manager_headers)
        assert cancel.status_code == 409

        stats = client.get(f"/api/suppliers/{supplier_id}/stats", headers=manager_headers)
        assert stats.json["stats"]["received_orders"] == 1

    def test_cashier_cannot_purchase(self, client, cashier_headers):
        assert client.get("/api/suppliers", headers=cashier_headers).status_code == 403
        assert client.post("/api/purchase-orders", json={}, headers=cashier_headers).status_code == 403

    def test_missing_order_is_404(self, client, manager_headers):
        assert client.get("/api/purchase-orders/999999", headers=manager_headers).status_code == 404


class TestProgramStatsApi:

    def test_stats(self, client, manager_headers, cashier_headers, customer, program):
        response = client.get(f"/api/loyalty/programs/{program.id}/stats", headers=manager_headers)
        assert response.status_code == 200
        assert response.json["stats"]["total_customers"] == 1

        denied = client.get(f"/api/loyalty/programs/{program.id}/stats", headers=cashier_headers)
        assert denied.status_code == 403


class TestHealth:

    def test_health(self, client, db_session):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json["status"] == "healthy"
