"""Integration tests for the payment notification endpoint."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from ordering.fulfillment import FulfillmentService
from ordering.order.order import Order, OrderStatus
from payments.api.routes import payment_router
from payments.gateway import set_gateway
from payments.gateway.midtrans_adapter import MidtransGateway, midtrans_signature
from protean import current_domain
from protean.integrations.fastapi import register_exception_handlers


@pytest.fixture()
def client():
    app = FastAPI()
    app.include_router(payment_router)
    register_exception_handlers(app)
    return TestClient(app)


def _notify(client, order_id, status="settlement", signature="test-signature"):
    return client.post(
        "/payments/webhook",
        json={
            "order_id": order_id,
            "transaction_status": status,
            "status_code": "200",
            "gross_amount": "37500.00",
            "signature_key": signature,
            "transaction_id": "txn-001",
        },
    )


def _status(order_id):
    return current_domain.repository_for(Order).get(order_id).status


class TestPaymentWebhook:
    def test_settlement_moves_order_to_processing(self, client, placed_order, job_queue):
        order_id = placed_order["order_id"]
        response = _notify(client, order_id)

        assert response.status_code == 200
        assert response.json() == {"status": "applied", "order_status": OrderStatus.PROCESSING.value}
        assert _status(order_id) == OrderStatus.PROCESSING.value
        assert job_queue.get(f"auto-cancel-{order_id}") is None

    def test_bad_signature_is_rejected(self, client, placed_order):
        response = _notify(client, placed_order["order_id"], signature="forged")
        assert response.status_code == 401
        assert _status(placed_order["order_id"]) == OrderStatus.PENDING_PAYMENT.value

    def test_failed_payment_changes_nothing(self, client, placed_order, job_queue):
        order_id = placed_order["order_id"]
        response = _notify(client, order_id, status="expire")

        assert response.json()["status"] == "ignored"
        assert _status(order_id) == OrderStatus.PENDING_PAYMENT.value
        assert job_queue.get(f"auto-cancel-{order_id}") is not None

    def test_duplicate_notification_is_skipped(self, client, placed_order):
        order_id = placed_order["order_id"]
        _notify(client, order_id)
        response = _notify(client, order_id)
        assert response.status_code == 200
        assert response.json()["status"] == "skipped"

    def test_settlement_after_auto_cancel_is_skipped(self, client, placed_order):
        order_id = placed_order["order_id"]
        FulfillmentService().auto_cancel(order_id)
        response = _notify(client, order_id)
        assert response.json()["status"] == "skipped"
        assert _status(order_id) == OrderStatus.CANCELLED.value

    def test_unknown_order(self, client):
        assert _notify(client, "no-such-order").status_code == 404

    def test_midtrans_signature(self, client, placed_order):
        set_gateway(MidtransGateway("server-key"))
        order_id = placed_order["order_id"]
        signature = midtrans_signature(order_id, "200", "37500.00", "server-key")

        assert _notify(client, order_id, signature="test-signature").status_code == 401
        assert _notify(client, order_id, signature=signature).status_code == 200
