"""
HTTP surface of each service, driven through FastAPI's TestClient.
"""

import uuid
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from conftest import published
from services.common.messaging import EventPublisher
from services.orders.app.outbox import DirectDelivery


@pytest.fixture
def orders_client(monkeypatch, product_client, redis_mock):
    from services.orders.app import main

    monkeypatch.setattr(main, "product_client", product_client)
    monkeypatch.setattr(main, "delivery", DirectDelivery(EventPublisher(redis=redis_mock)))
    with TestClient(main.app) as client:
        yield client


@pytest.fixture
def products_client(redis_mock):
    from services.products.app import main

    with TestClient(main.app) as client:
        real_redis, main.publisher.redis = main.publisher.redis, redis_mock
        yield client
        main.publisher.redis = real_redis


@pytest.fixture
def users_client(redis_mock):
    from services.users.app import main

    with TestClient(main.app) as client:
        real_redis, main.publisher.redis = main.publisher.redis, redis_mock
        yield client
        main.publisher.redis = real_redis


class TestOrdersApi:
    def test_place_and_fetch_order(self, orders_client, products_service, redis_mock):
        products_service.add(3, "Widget", "10.00", 5)

        resp = orders_client.post(
            "/api/orders",
            json={"userId": 7, "items": [{"productId": 3, "quantity": 2}]},
        )

        assert resp.status_code == 201
        body = resp.json()
        assert body["status"] == "CONFIRMED"
        assert Decimal(str(body["totalAmount"])) == Decimal("20.00")
        assert products_service.stock(3) == 3

        fetched = orders_client.get(f"/api/orders/{body['id']}").json()
        assert fetched["items"][0]["productName"] == "Widget"
        assert [channel for channel, _ in published(redis_mock)] == [
            "ecommerce.exchange:order.created"
        ]

    def test_insufficient_stock_is_conflict(self, orders_client, products_service):
        products_service.add(3, "Widget", "10.00", 1)

        resp = orders_client.post(
            "/api/orders",
            json={"userId": 7, "items": [{"productId": 3, "quantity": 5}]},
        )

        assert resp.status_code == 409
        assert "Available: 1, Requested: 5" in resp.json()["detail"]

    def test_empty_order_is_bad_request(self, orders_client):
        resp = orders_client.post("/api/orders", json={"userId": 7, "items": []})
        assert resp.status_code == 400

    def test_unknown_product_is_not_found(self, orders_client):
        resp = orders_client.post(
            "/api/orders",
            json={"userId": 7, "items": [{"productId": 404, "quantity": 1}]},
        )
        assert resp.status_code == 404

    def test_cancel_after_shipping_is_rejected(self, orders_client, products_service):
        products_service.add(3, "Widget", "10.00", 5)
        order_id = orders_client.post(
            "/api/orders",
            json={"userId": 7, "items": [{"productId": 3, "quantity": 1}]},
        ).json()["id"]

        resp = orders_client.put(f"/api/orders/{order_id}/status", json={"status": "SHIPPED"})
        assert resp.json()["status"] == "SHIPPED"

        resp = orders_client.delete(f"/api/orders/{order_id}")
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Cannot cancel order with status: SHIPPED"

    def test_cancel_and_list_by_status(self, orders_client, products_service):
        products_service.add(3, "Widget", "10.00", 5)
        order_id = orders_client.post(
            "/api/orders",
            json={"userId": 9, "items": [{"productId": 3, "quantity": 1}]},
        ).json()["id"]

        assert orders_client.delete(f"/api/orders/{order_id}").status_code == 204

        cancelled = orders_client.get("/api/orders/status/CANCELLED").json()
        assert order_id in [o["id"] for o in cancelled]

    def test_pending_status_update_is_bad_request(self, orders_client, products_service):
        products_service.add(3, "Widget", "10.00", 5)
        order_id = orders_client.post(
            "/api/orders",
            json={"userId": 7, "items": [{"productId": 3, "quantity": 1}]},
        ).json()["id"]

        resp = orders_client.put(f"/api/orders/{order_id}/status", json={"status": "PENDING"})

        assert resp.status_code == 400
        assert orders_client.get(f"/api/orders/{order_id}").json()["status"] == "CONFIRMED"

    def test_unknown_order(self, orders_client):
        assert orders_client.get("/api/orders/999999").status_code == 404


class TestProductsApi:
    def _create(self, client, stock):
        resp = client.post(
            "/api/products",
            json={"name": "Widget", "price": "10.00", "stock": stock, "category": "tools"},
        )
        assert resp.status_code == 201
        return resp.json()["id"]

    def test_reserve_and_release(self, products_client):
        product_id = self._create(products_client, stock=2)

        ok = products_client.post(f"/api/products/{product_id}/reserve", params={"quantity": 2})
        refused = products_client.post(f"/api/products/{product_id}/reserve", params={"quantity": 1})
        assert ok.json() == {"reserved": True}
        assert refused.json() == {"reserved": False}

        released = products_client.post(f"/api/products/{product_id}/release", params={"quantity": 2})
        assert released.json() == {"released": True}
        assert products_client.get(f"/api/products/{product_id}").json()["stock"] == 2

    def test_stock_update_below_zero_is_conflict(self, products_client):
        product_id = self._create(products_client, stock=1)
        resp = products_client.post(
            "/api/products/stock", json={"productId": product_id, "quantity": -5}
        )
        assert resp.status_code == 409

    def test_search_route(self, products_client):
        self._create(products_client, stock=1)
        resp = products_client.get("/api/products/search", params={"searchTerm": "widg"})
        assert resp.status_code == 200
        assert all("widg" in p["name"].lower() for p in resp.json())
        assert resp.json()

    def test_unknown_product(self, products_client):
        assert products_client.get("/api/products/999999").status_code == 404


class TestUsersApi:
    def test_register_and_duplicate(self, users_client, redis_mock):
        email = f"{uuid.uuid4().hex}@example.com"

        resp = users_client.post("/api/users", json={"email": email, "fullName": "Ada"})
        assert resp.status_code == 201
        assert published(redis_mock)[0][1]["email"] == email

        dup = users_client.post("/api/users", json={"email": email, "fullName": "Ada"})
        assert dup.status_code == 409


def test_analytics_summary_route():
    from services.analytics.app import main

    with TestClient(main.app) as client:
        summary = client.get("/api/analytics/summary").json()
        assert {"totalOrders", "totalRevenue", "totalUsers", "totalProducts"} <= set(summary)
        assert client.get("/api/analytics/events/type/ORDER_CREATED").status_code == 200
        assert client.get("/api/analytics/events/type/BOGUS").status_code == 422
        assert client.post("/api/analytics/summary/rebuild").status_code == 200


def test_notifications_health():
    from services.notifications.app import main

    with TestClient(main.app) as client:
        assert client.get("/health").json() == {
            "status": "ok",
            "service": "notifications-service",
        }
