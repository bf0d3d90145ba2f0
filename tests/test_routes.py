"""Tests for the HTTP surface, wired to an in-memory data source."""

import pytest
from fastapi.testclient import TestClient

from storefront.main import app, init_services


@pytest.fixture
def http(source):
    init_services(app, source=source)
    with TestClient(app) as c:
        yield c


class TestQueries:
    def test_health(self, http):
        assert http.get("/health").json() == {"status": "ok"}

    def test_products(self, http, source):
        body = http.get("/api/v1/products").json()
        http.get("/api/v1/products")

        assert body["status"] == "ready"
        assert body["loading"] is False
        assert body["error"] is None
        assert len(body["data"]) == 3
        assert len(source.calls_for("products")) == 1

    def test_products_refresh(self, http, source):
        http.get("/api/v1/products")
        http.get("/api/v1/products", params={"refresh": "true"})
        assert len(source.calls_for("products")) == 2

    def test_categories_error_in_band(self, http, source):
        source.fail("categories", "service unavailable")

        resp = http.get("/api/v1/categories")

        assert resp.status_code == 200
        assert resp.json()["error"] == "service unavailable"
        assert resp.json()["status"] == "error"

    def test_orders_pages(self, http):
        body = http.get("/api/v1/orders", params={"user_id": "u1", "pages": 3}).json()

        assert len(body["data"]) == 25
        assert body["has_more"] is False

    def test_orders_without_user(self, http, source):
        body = http.get("/api/v1/orders").json()

        assert body["data"] == []
        assert body["status"] == "idle"
        assert source.calls_for("orders") == []

    def test_orders_page_size_validated(self, http):
        assert http.get("/api/v1/orders", params={"user_id": "u1", "page_size": 0}).status_code == 422


class TestOrders:
    def test_get_order(self, http):
        resp = http.get("/api/v1/orders/u2-o0", params={"user_id": "u2"})
        assert resp.status_code == 200
        assert resp.json()["id"] == "u2-o0"

    def test_get_order_not_found(self, http):
        assert http.get("/api/v1/orders/nope", params={"user_id": "u2"}).status_code == 404

    def test_cancel_order(self, http):
        resp = http.post("/api/v1/orders/u1-o0/cancel", json={"user_id": "u1", "reason": "duplicate"})
        assert resp.status_code == 200
        assert resp.json()["status"] == "cancelled"

    def test_cancel_missing_order(self, http):
        resp = http.post("/api/v1/orders/nope/cancel", json={"user_id": "u1"})
        assert resp.status_code == 404

    def test_cancel_upstream_failure(self, http, source):
        source.fail("orders")
        resp = http.post("/api/v1/orders/u1-o0/cancel", json={"user_id": "u1"})
        assert resp.status_code == 502

    def test_update_status(self, http):
        resp = http.post("/api/v1/orders/u1-o0/status", json={"user_id": "u1", "status": "shipped", "notes": "AWB 1234"})
        assert resp.status_code == 200
        assert resp.json()["status"] == "shipped"
        assert resp.json()["notes"] == "AWB 1234"

    def test_update_status_unknown_value(self, http, source):
        resp = http.post("/api/v1/orders/u1-o0/status", json={"user_id": "u1", "status": "teleported"})
        assert resp.status_code == 422
        assert source.updates == []

    def test_update_status_missing_order(self, http):
        resp = http.post("/api/v1/orders/nope/status", json={"user_id": "u1", "status": "shipped"})
        assert resp.status_code == 404

    def test_create_order(self, http, source):
        body = {
            "user_id": "u2",
            "order": {
                "shipping_address": {"name": "Asha", "address": "12 Hill Road", "city": "Pune"},
                "shipping_pincode": "411001",
                "customer_name": "Asha",
                "customer_phone": "9800000000",
                "customer_email": "asha@example.com",
                "payment_method": "cod",
            },
            "items": [{"product_id": "p1", "name": "Mug", "price": 250, "quantity": 2}],
        }

        resp = http.post("/api/v1/orders", json=body)

        assert resp.status_code == 201
        assert resp.json()["status"] == "confirmed"
        assert resp.json()["total_amount"] == 500
        assert len(source.tables["order_items"]) == 1

    def test_create_order_empty_cart(self, http):
        body = {
            "user_id": "u2",
            "order": {
                "shipping_address": "12 Hill Road",
                "shipping_pincode": "411001",
                "customer_name": "Asha",
                "customer_phone": "9800000000",
                "customer_email": "asha@example.com",
                "payment_method": "upi",
            },
            "items": [],
        }
        resp = http.post("/api/v1/orders", json=body)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Cart is empty"


class TestCacheAdmin:
    def test_invalidate_key(self, http, source):
        http.get("/api/v1/products")
        resp = http.post("/api/v1/cache/invalidate", json={"key": "products"})
        http.get("/api/v1/products")

        assert resp.json() == {"status": "ok", "key": "products"}
        assert len(source.calls_for("products")) == 2

    def test_invalidate_all(self, http, source):
        http.get("/api/v1/products")
        http.get("/api/v1/categories")
        http.post("/api/v1/cache/invalidate", json={})
        assert len(app.state.query_client.cache) == 0

    def test_preload_accepted(self, http, source):
        source.fail("categories")

        resp = http.post("/api/v1/cache/preload", json={"entity_types": ["products", "categories"]})

        assert resp.status_code == 202
        cache = app.state.query_client.cache
        assert "products" in cache
        assert "categories" not in cache

    def test_perf_report_disabled_by_default(self, http):
        assert http.get("/api/v1/perf/report").json() == {"enabled": False}
