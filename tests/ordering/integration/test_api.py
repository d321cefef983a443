"""Integration tests for the checkout, webhook and order endpoints via TestClient."""

import json

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from marketplace.api import checkout_router, order_router, register_error_handlers, webhook_router
from marketplace.api.routes import (
    get_checkout_orchestrator,
    get_lifecycle_manager,
    get_refunds,
    get_webhook_handler,
)
from marketplace.domain import marketplace


@pytest.fixture()
def client(orchestrator, lifecycle, webhook_handler, refunds):
    app = FastAPI()

    @app.middleware("http")
    async def domain_context_middleware(request: Request, call_next):
        with marketplace.domain_context():
            return await call_next(request)

    app.include_router(checkout_router)
    app.include_router(webhook_router)
    app.include_router(order_router)
    register_error_handlers(app)

    app.dependency_overrides[get_checkout_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_lifecycle_manager] = lambda: lifecycle
    app.dependency_overrides[get_webhook_handler] = lambda: webhook_handler
    app.dependency_overrides[get_refunds] = lambda: refunds
    return TestClient(app)


@pytest.fixture
def magazine_id(register_magazine):
    return register_magazine(wholesale_price=12.50, quantity=5)


def _checkout(client, magazine_id, quantity=2, retailer_id="ret-001"):
    return client.post(
        "/checkout",
        json={
            "retailerId": retailer_id,
            "retailerEmail": "buyer@cornershop.example",
            "retailerName": "Corner Shop",
            "items": [{"magazineId": magazine_id, "quantity": quantity}],
        },
    )


def _raise(exc):
    def _fail(*args, **kwargs):
        raise exc

    return _fail


def _webhook(client, session_id, status, signature="test-signature"):
    body = json.dumps({"eventType": "checkout.session.completed", "sessionId": session_id, "status": status})
    return client.post(
        "/webhooks/payments",
        content=body,
        headers={"Content-Type": "application/json", "X-Gateway-Signature": signature},
    )


class TestCheckoutEndpoint:
    def test_start_checkout(self, client, magazine_id, available):
        response = _checkout(client, magazine_id)

        assert response.status_code == 201
        data = response.json()
        assert data["orderId"]
        assert data["sessionId"]
        assert data["redirectUrl"].startswith("https://")
        assert data["totalAmount"] == 25.0
        assert data["currency"] == "usd"
        assert available(magazine_id) == 3

    def test_empty_cart(self, client):
        response = client.post(
            "/checkout",
            json={"retailerId": "ret-001", "retailerEmail": "buyer@cornershop.example", "items": []},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    def test_quantity_must_be_an_integer(self, client, magazine_id, available):
        response = _checkout(client, magazine_id, quantity="2")

        assert response.status_code == 400
        assert available(magazine_id) == 5

    def test_unknown_magazine(self, client):
        response = _checkout(client, "mag-missing")

        assert response.status_code == 400
        assert response.json()["details"]["magazineId"] == "mag-missing"

    def test_insufficient_inventory(self, client, magazine_id):
        response = _checkout(client, magazine_id, quantity=6)

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "insufficient_inventory"
        assert body["details"] == {"magazineId": magazine_id, "requested": 6, "available": 5}

    def test_gateway_rejection_hides_provider_message(self, client, magazine_id, gateway, available):
        gateway.configure(should_succeed=False, failure_reason="sk_live key revoked")

        response = _checkout(client, magazine_id)

        assert response.status_code == 502
        assert response.json()["error"] == "gateway_rejected"
        assert "sk_live" not in response.text
        assert available(magazine_id) == 5

    def test_success_redirect_confirms_paid_order(self, client, magazine_id, gateway):
        data = _checkout(client, magazine_id).json()
        gateway.complete_session(data["sessionId"])

        response = client.get("/checkout/success", params={"session_id": data["sessionId"]})

        assert response.status_code == 200
        assert response.json()["orderStatus"] == "confirmed"


class TestWebhookEndpoint:
    def test_payment_succeeded(self, client, magazine_id, gateway):
        data = _checkout(client, magazine_id).json()
        gateway.complete_session(data["sessionId"])

        response = _webhook(client, data["sessionId"], "succeeded")

        assert response.status_code == 200
        assert response.json() == {"status": "processed", "orderId": data["orderId"], "orderStatus": "confirmed"}

    def test_replayed_webhook_is_acknowledged(self, client, magazine_id, gateway):
        data = _checkout(client, magazine_id).json()
        gateway.complete_session(data["sessionId"])
        _webhook(client, data["sessionId"], "succeeded")

        response = _webhook(client, data["sessionId"], "succeeded")

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"

    def test_payment_failed_releases_stock(self, client, magazine_id, available):
        data = _checkout(client, magazine_id).json()

        response = _webhook(client, data["sessionId"], "failed")

        assert response.json()["orderStatus"] == "cancelled"
        assert available(magazine_id) == 5

    def test_bad_signature(self, client, magazine_id):
        data = _checkout(client, magazine_id).json()

        response = _webhook(client, data["sessionId"], "succeeded", signature="forged")

        assert response.status_code == 401
        assert response.json()["error"] == "invalid_signature"

    def test_malformed_body(self, client):
        response = client.post(
            "/webhooks/payments",
            content=b"not json",
            headers={"X-Gateway-Signature": "test-signature"},
        )

        assert response.status_code == 400

    def test_unknown_session_is_acknowledged(self, client):
        response = _webhook(client, "cs_missing", "succeeded")

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"

    def test_unexpected_failure_is_a_500_and_can_be_redelivered(
        self, client, magazine_id, gateway, lifecycle, monkeypatch
    ):
        data = _checkout(client, magazine_id).json()
        gateway.complete_session(data["sessionId"])
        monkeypatch.setattr(lifecycle, "transition", _raise(RuntimeError("datastore down")))
        lenient = TestClient(client.app, raise_server_exceptions=False)

        response = _webhook(lenient, data["sessionId"], "succeeded")

        assert response.status_code == 500
        assert response.json() == {"error": "internal_error", "message": "Internal server error", "details": {}}
        assert client.get(f"/orders/{data['orderId']}").json()["status"] == "pending"

        monkeypatch.undo()
        response = _webhook(client, data["sessionId"], "succeeded")

        assert response.json()["orderStatus"] == "confirmed"


class TestOrderEndpoints:
    def test_get_order(self, client, magazine_id):
        data = _checkout(client, magazine_id).json()

        response = client.get(f"/orders/{data['orderId']}")

        assert response.status_code == 200
        order = response.json()
        assert order["status"] == "pending"
        assert order["totalAmount"] == 25.0
        assert order["checkoutSessionId"] == data["sessionId"]
        assert order["items"][0]["unitPrice"] == 12.5
        assert order["items"][0]["lineTotal"] == 25.0

    def test_get_unknown_order(self, client):
        response = client.get("/orders/missing")

        assert response.status_code == 404
        assert response.json()["error"] == "order_not_found"

    def test_list_retailer_orders(self, client, magazine_id):
        _checkout(client, magazine_id, quantity=1)
        _checkout(client, magazine_id, quantity=1)
        _checkout(client, magazine_id, quantity=1, retailer_id="ret-002")

        response = client.get("/orders", params={"retailer_id": "ret-001"})

        assert response.status_code == 200
        assert len(response.json()) == 2
        assert {o["retailerId"] for o in response.json()} == {"ret-001"}

    def test_pending_order_cannot_ship(self, client, magazine_id):
        data = _checkout(client, magazine_id).json()

        response = client.post(f"/orders/{data['orderId']}/transitions", json={"status": "shipped"})

        assert response.status_code == 409
        assert response.json()["details"] == {"currentStatus": "pending", "requestedStatus": "shipped"}

    def test_unknown_status(self, client, magazine_id):
        data = _checkout(client, magazine_id).json()

        response = client.post(f"/orders/{data['orderId']}/transitions", json={"status": "lost"})

        assert response.status_code == 400

    def test_ship_confirmed_order(self, client, magazine_id, gateway):
        data = _checkout(client, magazine_id).json()
        gateway.complete_session(data["sessionId"])
        _webhook(client, data["sessionId"], "succeeded")

        response = client.post(
            f"/orders/{data['orderId']}/transitions",
            json={"status": "shipped", "cause": "dispatched"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "shipped"
        assert response.json()["statusReason"] == "dispatched"

    def test_refund(self, client, magazine_id, gateway):
        data = _checkout(client, magazine_id).json()
        gateway.complete_session(data["sessionId"])
        _webhook(client, data["sessionId"], "succeeded")

        response = client.post(f"/orders/{data['orderId']}/refunds", json={"amount": 10.0})

        assert response.status_code == 201
        assert response.json()["amount"] == 10.0
        assert client.get(f"/orders/{data['orderId']}").json()["refundedAmount"] == 10.0

    def test_refund_of_unpaid_order(self, client, magazine_id):
        data = _checkout(client, magazine_id).json()

        response = client.post(f"/orders/{data['orderId']}/refunds", json={})

        assert response.status_code == 409
        assert response.json()["error"] == "payment_not_confirmed"
