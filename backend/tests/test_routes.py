"""HTTP surface: status codes and JSON error bodies."""

import pytest


def _product(client, **overrides):
    body = {"name": "Red roses", "price_cents": 250, "cost_cents": 120, "units_per_package": 10}
    body.update(overrides)
    response = client.post("/api/products", json=body)
    assert response.status_code == 201, response.get_json()
    return response.get_json()["product"]


def test_health(client, db_session):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.get_json()["status"] == "healthy"


# =============================================================================
# CATALOG + STOCK
# =============================================================================

class TestCatalogAndStock:

    def test_initial_stock_goes_through_ledger(self, client, db_session):
        product = _product(client, initial_stock=30)
        assert product["stock"] == 30

        movements = client.get(f"/api/inventory/{product['id']}/movements").get_json()["items"]
        assert len(movements) == 1
        assert movements[0]["reason"] == "restock"

    def test_stock_is_not_writable(self, client, db_session):
        product = _product(client)
        response = client.patch(f"/api/products/{product['id']}", json={"stock": 99})
        assert response.status_code == 400
        assert response.get_json()["code"] == "VALIDATION_ERROR"

    @pytest.mark.parametrize("initial_stock", [-5, 2.5, "lots"])
    def test_rejected_initial_stock_persists_nothing(self, client, db_session, initial_stock):
        response = client.post("/api/products", json={
            "name": "Ghost orchid", "price_cents": 100, "initial_stock": initial_stock,
        })
        assert response.status_code == 400

        listed = client.get("/api/products?include_inactive=1").get_json()
        assert listed["count"] == 0

    def test_duplicate_sku(self, client, db_session):
        _product(client, sku="ROSE-RED")
        response = client.post("/api/products", json={"name": "Again", "price_cents": 1, "sku": "ROSE-RED"})
        assert response.status_code == 409

    def test_receive_and_shrinkage(self, client, db_session):
        product = _product(client, initial_stock=50)

        response = client.post("/api/inventory/receive", json={"product_id": product["id"], "quantity": 2})
        assert response.status_code == 201
        assert response.get_json()["summary"]["stock"] == 70

        response = client.post(
            "/api/inventory/shrinkage",
            json={"product_id": product["id"], "quantity": 15, "note": "broken stems"},
            headers={"X-Actor": "ana"},
        )
        body = response.get_json()
        assert response.status_code == 201
        assert body["summary"]["stock"] == 55
        assert body["summary"]["packages"] == 5
        assert body["summary"]["loose_stems"] == 5
        assert body["transaction"]["amount_cents"] == 15 * 120
        assert body["movement"]["actor"] == "ana"

    def test_shrinkage_over_stock(self, client, db_session):
        product = _product(client, initial_stock=3)
        response = client.post("/api/inventory/shrinkage", json={"product_id": product["id"], "quantity": 4})

        assert response.status_code == 409
        body = response.get_json()
        assert body["code"] == "INSUFFICIENT_STOCK"
        assert body["details"]["items"][0]["available"] == 3

    def test_clamped_shrinkage(self, client, db_session):
        product = _product(client, initial_stock=3)
        response = client.post(
            "/api/inventory/shrinkage",
            json={"product_id": product["id"], "quantity": 4, "clamp": True},
        )
        assert response.status_code == 201
        assert response.get_json()["clamped"] is True
        assert response.get_json()["applied_stems"] == 3

    @pytest.mark.parametrize("quantity", [0, -1, 2.5])
    def test_bad_quantity(self, client, db_session, quantity):
        product = _product(client)
        response = client.post("/api/inventory/receive", json={"product_id": product["id"], "quantity": quantity})
        assert response.status_code == 400

    def test_unknown_product(self, client, db_session):
        response = client.get("/api/inventory/999")
        assert response.status_code == 404
        assert response.get_json()["code"] == "NOT_FOUND"


# =============================================================================
# FINANCE
# =============================================================================

class TestFinance:

    def test_manual_entry_and_summary(self, client, db_session):
        response = client.post("/api/finance/transactions", json={
            "description": "Wrapping paper",
            "amount_cents": 800,
            "type": "expense",
            "date": "2026-03-02T10:00:00Z",
        })
        assert response.status_code == 201

        summary = client.get("/api/finance/summary?since=2026-03-01T00:00:00Z").get_json()
        assert summary["expense_cents"] == 800
        assert summary["net_cents"] == -800

    def test_zero_amount_rejected(self, client, db_session):
        response = client.post("/api/finance/transactions", json={
            "description": "Nothing", "amount_cents": 0, "type": "income",
        })
        assert response.status_code == 400
        assert response.get_json()["code"] == "INVALID_AMOUNT"

    def test_overlong_description_rejected(self, client, db_session):
        response = client.post("/api/finance/transactions", json={
            "description": "x" * 256, "amount_cents": 100, "type": "expense",
        })
        assert response.status_code == 400
        assert response.get_json()["code"] == "VALIDATION_ERROR"
        assert client.get("/api/finance/transactions").get_json()["items"] == []

    def test_no_mutation_routes(self, client, db_session):
        client.post("/api/finance/transactions", json={
            "description": "Sale", "amount_cents": 100, "type": "income",
        })
        tx_id = client.get("/api/finance/transactions").get_json()["items"][0]["id"]
        assert client.delete(f"/api/finance/transactions/{tx_id}").status_code in (404, 405)
        assert client.patch(f"/api/finance/transactions/{tx_id}", json={}).status_code in (404, 405)


# =============================================================================
# ORDERS
# =============================================================================

class TestOrders:

    def test_cart_flow(self, client, db_session):
        roses = _product(client, name="Roses", initial_stock=10, units_per_package=1)
        greens = _product(client, name="Greens", price_cents=50, initial_stock=10, units_per_package=1)

        order = client.post("/api/orders", json={}).get_json()["order"]
        assert order["status"] == "EMPTY"

        response = client.post(f"/api/orders/{order['id']}/items/standard",
                               json={"product_id": roses["id"], "quantity": 2})
        assert response.status_code == 201
        line = response.get_json()["line"]

        response = client.post(f"/api/orders/{order['id']}/items/custom", json={
            "name": "Table posy",
            "unit_price_cents": 1200,
            "composition": [
                {"product_id": roses["id"], "color_allocations": {"red": 1}},
                {"product_id": greens["id"], "color_allocations": {"default": 3}},
            ],
        })
        assert response.status_code == 201
        custom = response.get_json()["line"]
        assert custom["composition"][1] == {"product_id": greens["id"], "color_allocations": {"default": 3}}

        response = client.patch(f"/api/orders/{order['id']}/items/{line['id']}", json={"delta": 1})
        assert response.get_json()["line"]["quantity"] == 3

        response = client.post(f"/api/orders/{order['id']}/commit", headers={"X-Actor": "till-1"})
        body = response.get_json()["order"]
        assert response.status_code == 200
        assert body["status"] == "COMMITTED"
        assert body["total_cents"] == 3 * 250 + 1200

        assert client.get(f"/api/inventory/{roses['id']}").get_json()["stock"] == 6
        assert client.get(f"/api/inventory/{greens['id']}").get_json()["stock"] == 7

    def test_commit_shortage(self, client, db_session):
        roses = _product(client, name="Roses", initial_stock=2, units_per_package=1)
        order = client.post("/api/orders", json={}).get_json()["order"]
        client.post(f"/api/orders/{order['id']}/items/standard", json={"product_id": roses["id"], "quantity": 3})

        response = client.post(f"/api/orders/{order['id']}/commit")
        assert response.status_code == 409
        assert response.get_json()["details"]["items"] == [
            {"product_id": roses["id"], "requested": 3, "available": 2},
        ]
        assert client.get(f"/api/orders/{order['id']}").get_json()["order"]["status"] == "BUILDING"

    def test_commit_empty_cart(self, client, db_session):
        order = client.post("/api/orders", json={}).get_json()["order"]
        response = client.post(f"/api/orders/{order['id']}/commit")
        assert response.status_code == 409
        assert response.get_json()["code"] == "INVALID_STATE"

    def test_clear(self, client, db_session):
        roses = _product(client, initial_stock=2)
        order = client.post("/api/orders", json={}).get_json()["order"]
        client.post(f"/api/orders/{order['id']}/items/standard", json={"product_id": roses["id"]})

        response = client.post(f"/api/orders/{order['id']}/clear")
        assert response.get_json()["order"]["status"] == "DISCARDED"
        assert response.get_json()["order"]["lines"] == []


# =============================================================================
# WORKSHOP
# =============================================================================

class TestWorkshop:

    def test_batch_and_tasks(self, client, db_session):
        product = _product(client, care_days_water=2, care_days_cut=3)
        response = client.post("/api/workshop/batches", json={
            "product_id": product["id"],
            "stem_count": 24,
            "bucket_code": "B-07",
            "now": "2026-03-02T09:00:00Z",
        })
        assert response.status_code == 201
        batch = response.get_json()["batch"]

        tasks = client.get("/api/workshop/tasks?now=2026-03-05T09:00:00Z").get_json()
        assert [(t["kind"], t["overdue"]) for t in tasks["items"]] == [("water_change", True), ("cut", False)]
        assert tasks["items"][0]["due_at"] == "2026-03-04T09:00:00Z"

        response = client.post("/api/workshop/tasks/complete", json={
            "batch_id": batch["id"], "kind": "water_change", "now": "2026-03-05T09:00:00Z",
        })
        assert response.status_code == 200

        tasks = client.get("/api/workshop/tasks?now=2026-03-05T09:00:00Z").get_json()
        assert [t["kind"] for t in tasks["items"]] == ["cut"]

    def test_zero_stem_batch(self, client, db_session):
        product = _product(client)
        response = client.post("/api/workshop/batches", json={"product_id": product["id"], "stem_count": 0})
        assert response.status_code == 400
        assert response.get_json()["code"] == "INVALID_STEM_COUNT"

    def test_discarded_batch_rejects_maintenance(self, client, db_session):
        product = _product(client)
        batch = client.post("/api/workshop/batches", json={
            "product_id": product["id"], "stem_count": 5,
        }).get_json()["batch"]

        assert client.post(f"/api/workshop/batches/{batch['id']}/discard", json={}).status_code == 200
        response = client.post(f"/api/workshop/batches/{batch['id']}/water", json={})
        assert response.status_code == 409

        listed = client.get("/api/workshop/batches?status=all").get_json()["items"]
        assert [b["status"] for b in listed] == ["discarded"]

    def test_workshop_order_queue(self, client, db_session):
        roses = _product(client, name="Roses", initial_stock=10, units_per_package=1)
        order = client.post("/api/orders", json={
            "client_name": "Lucia",
            "client_phone": "+51 999 111 222",
            "scheduled_for": "2026-03-08T15:00:00Z",
        }).get_json()["order"]
        client.post(f"/api/orders/{order['id']}/items/custom", json={
            "name": "Anniversary box",
            "unit_price_cents": 6000,
            "composition": [
                {"product_id": roses["id"], "color_allocations": {"red": 2}},
                {"product_id": roses["id"], "color_allocations": {"red": 4}},
            ],
        })
        response = client.patch(f"/api/orders/{order['id']}", json={"dedication": "Forever yours"})
        assert response.status_code == 200

        body = client.post(f"/api/orders/{order['id']}/commit").get_json()["order"]
        assert body["fulfillment_status"] == "pending"
        assert body["lines"][0]["composition"] == [
            {"product_id": roses["id"], "color_allocations": {"red": 6}},
        ]
        assert client.get(f"/api/inventory/{roses['id']}").get_json()["stock"] == 4

        queue = client.get("/api/workshop/orders").get_json()
        assert [(o["id"], o["client_name"], o["scheduled_for"]) for o in queue["items"]] == [
            (order["id"], "Lucia", "2026-03-08T15:00:00Z"),
        ]

        response = client.post(f"/api/orders/{order['id']}/fulfillment", json={"status": "delivered"})
        assert response.status_code == 200
        assert client.get("/api/workshop/orders").get_json()["count"] == 0
        assert client.get("/api/workshop/orders?status=delivered").get_json()["count"] == 1

        response = client.post(f"/api/orders/{order['id']}/fulfillment", json={"status": "preparing"})
        assert response.status_code == 409
        assert response.get_json()["code"] == "INVALID_STATE"

    def test_order_details_reject_unknown_fields(self, client, db_session):
        order = client.post("/api/orders", json={}).get_json()["order"]
        response = client.patch(f"/api/orders/{order['id']}", json={"status": "COMMITTED"})
        assert response.status_code == 400
