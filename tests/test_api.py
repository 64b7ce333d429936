"""HTTP tests: full checkout flow and the error envelope."""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from storefront.api.deps import get_gateway, get_notifier
from storefront.data.database import get_db
from storefront.main import app

ADDRESS = {
    "name": "Piotr Zielinski",
    "line1": "ul. Polna 5",
    "city": "Poznan",
    "postal_code": "60-001",
    "country": "PL",
}


@pytest.fixture
def client(db, gateway, notifier):
    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


class TestCheckoutFlow:
    def test_cart_to_refund(self, client, make_product, notifier):
        product = make_product(name="Lampa", price="50.00", stock=5)

        r = client.post(
            "/coupons/",
            json={"code": "save10", "type": "percentage", "value": "10", "minimum_order_amount": "50"},
        )
        assert r.status_code == 201
        assert r.json()["type"] == "percentage"
        assert r.json()["code"] == "SAVE10"

        r = client.post("/carts/items", params={"session_id": "web-1"}, json={"product_id": product.id, "quantity": 2})
        assert r.status_code == 201
        assert Decimal(r.json()["subtotal"]) == Decimal("100.00")

        r = client.post("/carts/coupon", params={"session_id": "web-1"}, json={"code": "SAVE10"})
        assert Decimal(r.json()["total"]) == Decimal("90.00")

        r = client.post(
            "/orders/",
            json={
                "session_id": "web-1",
                "billing_address": ADDRESS,
                "shipping_address": ADDRESS,
                "shipping_method": "pickup",
                "customer_email": "piotr@example.com",
            },
        )
        assert r.status_code == 201
        order = r.json()
        assert Decimal(order["total_amount"]) == Decimal("90.00")
        assert order["items"][0]["product_name"] == "Lampa"

        r = client.post("/payments/", json={"order_id": order["id"], "amount": "90.00", "currency": "USD"})
        assert r.status_code == 201
        created = r.json()
        assert created["reused"] is False
        assert created["payment"]["status"] == "pending"
        transaction_id = created["payment"]["transaction_id"]

        r = client.post(
            "/payments/execute",
            json={"transaction_id": transaction_id, "order_id": order["id"], "payer_id": "PAYER-9"},
        )
        assert r.status_code == 200
        assert r.json()["status"] == "completed"

        r = client.get(f"/orders/{order['id']}")
        assert r.json()["payment_status"] == "paid"
        assert r.json()["status"] == "processing"

        r = client.post(
            "/refunds/",
            json={"order_id": order["id"], "refund_type": "partial", "reason": "Rysa", "amount": "50.00"},
        )
        assert r.status_code == 201
        refund_id = r.json()["id"]

        r = client.post(
            "/refunds/",
            json={"order_id": order["id"], "refund_type": "partial", "reason": "Druga rysa", "amount": "45.00"},
        )
        assert r.status_code == 409
        assert r.json()["error"]["code"] == "REFUND_LIMIT_EXCEEDED"

        r = client.post(f"/refunds/{refund_id}/complete", json={"refund_transaction_id": "RF-EXT"})
        assert r.json()["status"] == "completed"

        r = client.get(f"/refunds/orders/{order['id']}")
        assert Decimal(r.json()["total_refunded"]) == Decimal("50.00")

        r = client.get("/refunds/statistics", params={"timeframe": "30d"})
        assert r.status_code == 200
        assert r.json()["total_refunds"] == 1

        assert notifier.names[:2] == ["order.created", "order.processing"]

    def test_second_execute_conflict(self, client, make_product, place_order, gateway):
        order = place_order([(make_product(price="10.00"), 1)], session_id="web-2")
        created = client.post("/payments/", json={"order_id": order.id, "amount": "10.00"}).json()
        body = {"transaction_id": created["payment"]["transaction_id"], "order_id": order.id, "payer_id": "P"}

        assert client.post("/payments/execute", json=body).status_code == 200
        r = client.post("/payments/execute", json=body)
        assert r.status_code == 409
        assert r.json()["error"]["code"] == "PAYMENT_ALREADY_COMPLETED"
        assert gateway.capture_payment.call_count == 1

    def test_webhook_replay(self, client, make_product, place_order):
        order = place_order([(make_product(price="10.00"), 1)], session_id="web-3")
        client.post("/payments/", json={"order_id": order.id, "amount": "10.00"})
        event = {
            "id": "WH-API-1",
            "event_type": "PAYMENT.CAPTURE.COMPLETED",
            "resource": {"id": "CAP-API", "custom_id": str(order.id)},
        }

        assert client.post("/payments/webhook", json=event).json() == {"event_id": "WH-API-1", "status": "completed"}
        assert client.post("/payments/webhook", json=event).json()["status"] == "duplicate"


class TestErrors:
    def test_not_found_envelope(self, client):
        r = client.get("/orders/9999")
        assert r.status_code == 404
        assert r.json() == {"error": {"code": "NOT_FOUND", "message": "Order not found", "details": {"order_id": 9999}}}

    def test_insufficient_stock(self, client, make_product):
        product = make_product(stock=1)
        r = client.post("/carts/items", params={"session_id": "x"}, json={"product_id": product.id, "quantity": 2})
        assert r.status_code == 400
        assert r.json()["error"]["code"] == "INSUFFICIENT_STOCK"

    def test_unknown_refund_timeframe(self, client):
        r = client.get("/refunds/statistics", params={"timeframe": "5y"})
        assert r.status_code == 400
        assert r.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_unexpected_error_is_generic(self, client, db, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("connection string with password")

        monkeypatch.setattr(db, "execute", boom)
        r = client.get("/health")
        assert r.status_code == 500
        assert r.json() == {"error": {"code": "SERVER_ERROR", "message": "Internal server error"}}

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}
