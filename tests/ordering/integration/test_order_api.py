"""Integration tests for the order and inventory API endpoints via TestClient."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from ordering.api.routes import inventory_router, order_router
from ordering.order.order import Order, OrderStatus
from protean import current_domain
from protean.integrations.fastapi import register_exception_handlers


@pytest.fixture()
def client():
    app = FastAPI()
    app.include_router(order_router)
    app.include_router(inventory_router)
    register_exception_handlers(app)
    return TestClient(app)


@pytest.fixture()
def stocked(client, make_product):
    make_product("7", 15000, name="Fresh Milk 1L")
    response = client.post("/inventory/store-1/7/stock", json={"quantity": 5, "actor_id": "admin-1"})
    assert response.status_code == 201


def _checkout(client, quantity=2, **overrides):
    payload = {
        "customer_id": "cust-001",
        "store_id": "store-1",
        "items": [{"product_id": "7", "quantity": quantity}],
    }
    payload.update(overrides)
    return client.post("/orders", json=payload)


class TestInventoryEndpoints:
    def test_stock_in_reports_new_level(self, client):
        response = client.post("/inventory/store-1/7/stock", json={"quantity": 5})
        assert response.status_code == 201
        assert response.json() == {"store_id": "store-1", "product_id": "7", "available": 5}

        response = client.post("/inventory/store-1/7/stock", json={"quantity": 2})
        assert response.json()["available"] == 7

    def test_stock_in_rejects_non_positive_quantity(self, client):
        assert client.post("/inventory/store-1/7/stock", json={"quantity": 0}).status_code == 422

    def test_stock_level(self, client, stocked):
        response = client.get("/inventory/store-1/7")
        assert response.status_code == 200
        assert response.json()["available"] == 5


class TestCreateOrder:
    def test_creates_order(self, client, stocked):
        response = _checkout(client)
        assert response.status_code == 201
        body = response.json()
        assert body["status"] == OrderStatus.PENDING_PAYMENT.value
        assert body["subtotal"] == 30000
        assert body["items"][0]["unit_price"] == 15000
        assert body["payment_deadline_at"] is not None

    def test_insufficient_stock_is_a_bad_request(self, client, stocked):
        _checkout(client, quantity=5)
        response = _checkout(client, quantity=1)
        assert response.status_code == 400
        assert "Insufficient stock. Available: 0" in str(response.json())

    def test_empty_items_rejected(self, client):
        assert _checkout(client, items=[]).status_code == 422

    def test_unresolvable_store(self, client, stocked):
        response = _checkout(client, store_id=None, latitude=-6.2, longitude=106.8)
        assert response.status_code == 400
        assert "No store found within service radius" in str(response.json())

    def test_idempotency_header_replays(self, client, stocked):
        payload = {"customer_id": "cust-001", "store_id": "store-1", "items": [{"product_id": "7", "quantity": 2}]}
        first = client.post("/orders", json=payload, headers={"Idempotency-Key": "checkout-api-1"})
        replay = client.post("/orders", json=payload, headers={"Idempotency-Key": "checkout-api-1"})

        assert first.status_code == 201
        assert replay.status_code == 201
        assert replay.json()["order_id"] == first.json()["order_id"]
        assert client.get("/inventory/store-1/7").json()["available"] == 3

    def test_header_wins_over_body_key(self, client, stocked):
        first = _checkout(client, quantity=1, idempotency_key="body-key")
        second = client.post(
            "/orders",
            json={
                "customer_id": "cust-001",
                "store_id": "store-1",
                "items": [{"product_id": "7", "quantity": 1}],
                "idempotency_key": "body-key",
            },
            headers={"Idempotency-Key": "header-key"},
        )
        assert second.json()["order_id"] != first.json()["order_id"]

    def test_idempotency_key_in_body(self, client, stocked):
        first = _checkout(client, quantity=1, idempotency_key="checkout-api-2")
        second = _checkout(client, quantity=1, idempotency_key="checkout-api-2")
        assert first.json()["order_id"] == second.json()["order_id"]


class TestGetOrder:
    def test_get_order(self, client, stocked):
        order_id = _checkout(client).json()["order_id"]
        response = client.get(f"/orders/{order_id}")
        assert response.status_code == 200
        assert response.json()["order_id"] == order_id

    def test_unknown_order(self, client):
        assert client.get("/orders/no-such-order").status_code == 404


class TestOrderActions:
    def test_full_bank_transfer_flow(self, client, stocked):
        order_id = _checkout(client).json()["order_id"]

        response = client.put(
            f"/orders/{order_id}/payment-proof",
            json={"customer_id": "cust-001", "payment_reference": "transfer-001"},
        )
        assert response.status_code == 200
        assert response.json() == {
            "status": "applied",
            "order_id": order_id,
            "order_status": OrderStatus.PAYMENT_REVIEW.value,
        }

        assert client.put(f"/orders/{order_id}/confirm-payment", json={"admin_id": "admin-1"}).status_code == 200
        assert client.put(f"/orders/{order_id}/ship", json={"admin_id": "admin-1"}).status_code == 200
        response = client.put(f"/orders/{order_id}/confirm-delivery", json={"customer_id": "cust-001"})
        assert response.json()["order_status"] == OrderStatus.CONFIRMED.value

    def test_invalid_transition_is_a_conflict(self, client, stocked):
        order_id = _checkout(client).json()["order_id"]
        response = client.put(f"/orders/{order_id}/ship", json={"admin_id": "admin-1"})
        assert response.status_code == 409
        assert "PENDING_PAYMENT" in response.json()["detail"]

    def test_customer_cancel_restores_stock(self, client, stocked):
        order_id = _checkout(client).json()["order_id"]
        assert client.get("/inventory/store-1/7").json()["available"] == 3

        response = client.put(f"/orders/{order_id}/cancel", json={"customer_id": "cust-001", "reason": "Mistake"})
        assert response.status_code == 200
        assert client.get("/inventory/store-1/7").json()["available"] == 5
        assert current_domain.repository_for(Order).get(order_id).cancellation_reason == "Mistake"

    def test_cancel_someone_elses_order(self, client, stocked):
        order_id = _checkout(client).json()["order_id"]
        response = client.put(f"/orders/{order_id}/cancel", json={"customer_id": "cust-002"})
        assert response.status_code == 404

    def test_admin_cancel(self, client, stocked):
        order_id = _checkout(client).json()["order_id"]
        response = client.put(f"/orders/{order_id}/admin-cancel", json={"admin_id": "admin-1", "reason": "Fraud"})
        assert response.status_code == 200
        assert response.json()["order_status"] == OrderStatus.CANCELLED.value
