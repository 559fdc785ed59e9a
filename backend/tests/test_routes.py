"""
HTTP surface tests.

Verifies routes translate service errors to status codes and return the
documented JSON envelopes.
"""

from backoffice.services import sales_service


class TestSystem:

    def test_health(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.get_json()["checks"]["database"]["status"] == "healthy"


class TestShiftRoutes:

    def test_open_close_cycle(self, client, branch, cashier):
        opened = client.post("/api/shifts/open", json={
            "branch_id": branch.id,
            "user_id": cashier.id,
            "opening_balance_cents": 1000,
        })
        assert opened.status_code == 201
        shift_id = opened.get_json()["shift"]["id"]

        again = client.post("/api/shifts/open", json={"branch_id": branch.id, "user_id": cashier.id})
        assert again.status_code == 409

        closed = client.post(f"/api/shifts/{shift_id}/close", json={"closing_balance_cents": 900})
        assert closed.status_code == 200
        assert closed.get_json()["summary"]["difference_cents"] == -100

        twice = client.post(f"/api/shifts/{shift_id}/close", json={"closing_balance_cents": 900})
        assert twice.status_code == 409

    def test_open_requires_branch(self, client, cashier):
        response = client.post("/api/shifts/open", json={"user_id": cashier.id})

        assert response.status_code == 400
        assert "branch_id" in response.get_json()["error"]

    def test_overview_without_shift(self, client, branch, cashier):
        response = client.get(f"/api/shifts/open?branch_id={branch.id}&user_id={cashier.id}")

        assert response.status_code == 200
        assert response.get_json()["shift"] is None

    def test_summary_of_missing_shift(self, client):
        assert client.get("/api/shifts/999/summary").status_code == 404

    def test_outflow_and_unlinked_listing(self, client, branch, cashier):
        created = client.post("/api/shifts/outflows", json={
            "branch_id": branch.id,
            "user_id": cashier.id,
            "amount_cents": 250,
            "description": "Supplies",
        })
        assert created.status_code == 201

        listed = client.get(f"/api/shifts/outflows/unlinked?branch_id={branch.id}")
        assert [o["amount_cents"] for o in listed.get_json()["outflows"]] == [250]

    def test_unlinked_sales_listing(self, client, branch, cashier, product, add_batch, add_price):
        add_batch(5, product=product)
        price = add_price(product, 100)
        created = client.post("/api/sales", json={
            "branch_id": branch.id,
            "user_id": cashier.id,
            "payment_method": "CARD",
            "lines": [{"product_id": product.id, "price_id": price.id, "quantity": 1}],
        })
        sale_id = created.get_json()["sale"]["id"]

        listed = client.get(f"/api/shifts/sales/unlinked?branch_id={branch.id}&user_id={cashier.id}")

        assert listed.status_code == 200
        assert [s["id"] for s in listed.get_json()["sales"]] == [sale_id]
        assert client.get("/api/shifts/sales/unlinked").status_code == 400


class TestSaleRoutes:

    def test_cash_sale_without_shift_conflicts(self, client, branch, cashier, product, add_batch, add_price):
        add_batch(5, product=product)
        price = add_price(product, 100)

        response = client.post("/api/sales", json={
            "branch_id": branch.id,
            "user_id": cashier.id,
            "payment_method": "CASH",
            "lines": [{"product_id": product.id, "price_id": price.id, "quantity": 1}],
        })

        assert response.status_code == 409

    def test_card_sale_created(self, client, branch, cashier, product, add_batch, add_price):
        add_batch(5, product=product)
        price = add_price(product, 100)

        response = client.post("/api/sales", json={
            "branch_id": branch.id,
            "user_id": cashier.id,
            "payment_method": "CARD",
            "lines": [{"product_id": product.id, "price_id": price.id, "quantity": 2}],
            "total_cents": 1,
        })

        assert response.status_code == 201
        sale = response.get_json()["sale"]
        assert sale["total_amount_cents"] == 200
        assert sale["shift_id"] is None

        listed = client.get(f"/api/sales/branch/{branch.id}?page_size=10").get_json()
        assert listed["pagination"]["total"] == 1

    def test_missing_lines_is_bad_request(self, client, branch, cashier):
        response = client.post("/api/sales", json={
            "branch_id": branch.id,
            "user_id": cashier.id,
            "payment_method": "CARD",
        })

        assert response.status_code == 400

    def test_unknown_sale(self, client):
        assert client.get("/api/sales/4040").status_code == 404

    def test_unexpected_failure_is_opaque(self, client, monkeypatch):
        def _boom(sale_id):
            raise RuntimeError("connection reset")

        monkeypatch.setattr(sales_service, "get_sale", _boom)

        response = client.get("/api/sales/1")

        assert response.status_code == 500
        assert response.get_json() == {"error": "Internal server error"}


class TestPriceRoutes:

    def test_request_and_approve(self, client, product, admin, cashier):
        requested = client.post("/api/price-requests", json={
            "product_id": product.id,
            "requested_by_user_id": cashier.id,
            "amount_cents": 850,
        })
        assert requested.status_code == 201
        authorization_id = requested.get_json()["price_request"]["id"]

        pending = client.get("/api/price-requests").get_json()["price_requests"]
        assert [r["id"] for r in pending] == [authorization_id]

        approved = client.post(
            f"/api/price-requests/{authorization_id}/approve",
            json={"approved_by_user_id": admin.id},
        )
        assert approved.status_code == 200
        assert approved.get_json()["price"]["kind"] == "SPECIAL"

        again = client.post(
            f"/api/price-requests/{authorization_id}/approve",
            json={"approved_by_user_id": admin.id},
        )
        assert again.status_code == 409

    def test_standard_price_listing(self, client, product, admin):
        created = client.post(f"/api/products/{product.id}/prices", json={
            "amount_cents": 990,
            "created_by_user_id": admin.id,
        })
        assert created.status_code == 201

        prices = client.get(f"/api/products/{product.id}/prices").get_json()["prices"]
        assert [p["amount_cents"] for p in prices] == [990]


class TestStockRoutes:

    def test_delivery_and_batches(self, client, branch, admin, product):
        response = client.post("/api/stock/deliveries", json={
            "branch_id": branch.id,
            "user_id": admin.id,
            "supplier_name": "Central",
            "entries": [{"product_id": product.id, "quantity": 12, "unit_cost_cents": 300}],
        })
        assert response.status_code == 201

        batches = client.get(f"/api/stock/batches?branch_id={branch.id}&product_id={product.id}")
        assert [b["quantity_on_hand"] for b in batches.get_json()["batches"]] == [12]

    def test_negative_quantity_rejected(self, client, branch, admin, product):
        response = client.post("/api/stock/deliveries", json={
            "branch_id": branch.id,
            "user_id": admin.id,
            "entries": [{"product_id": product.id, "quantity": -1, "unit_cost_cents": 300}],
        })

        assert response.status_code == 400


class TestBalanceRoutes:

    def test_balance_and_reset(self, client, branch, cashier):
        client.post("/api/shifts/outflows", json={
            "branch_id": branch.id,
            "user_id": cashier.id,
            "amount_cents": 400,
        })

        balance = client.get(f"/api/branches/{branch.id}/balance").get_json()["balance"]
        assert balance["accumulated_balance_cents"] == -400

        refused = client.post(f"/api/branches/{branch.id}/balance/reset", json={})
        assert refused.status_code == 400

        reset = client.post(f"/api/branches/{branch.id}/balance/reset", json={"confirm": True})
        assert reset.status_code == 200
        assert reset.get_json()["balance"]["accumulated_balance_cents"] == 0

    def test_unknown_branch(self, client):
        assert client.get("/api/branches/999/balance").status_code == 404


class TestNotificationRoutes:

    def test_list_and_mark_read(self, client, product, admin, cashier):
        client.post("/api/price-requests", json={
            "product_id": product.id,
            "requested_by_user_id": cashier.id,
            "amount_cents": 500,
        })

        unread = client.get(f"/api/notifications?user_id={admin.id}&unread=1").get_json()["notifications"]
        assert len(unread) == 1
        recipient_id = unread[0]["recipient_id"]

        marked = client.post(f"/api/notifications/{recipient_id}/read")
        assert marked.status_code == 200
        assert marked.get_json()["notification"]["is_read"] is True

        assert client.get(f"/api/notifications?user_id={admin.id}&unread=1").get_json()["notifications"] == []
