"""Tests for the payment gateway REST client (requests mocked)."""

from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
import requests

from storefront.domain.errors import PaymentGatewayError
from storefront.services.payment_gateway import PaymentGatewayClient


def _response(status_code=200, payload=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload or {}
    if status_code >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(response=resp)
    else:
        resp.raise_for_status.return_value = None
    return resp


@pytest.fixture
def client():
    return PaymentGatewayClient(base_url="http://gateway.test/", timeout=2)


class TestPaymentGatewayClient:
    @patch("storefront.services.payment_gateway.requests.post")
    def test_create_payment(self, mock_post, client):
        mock_post.return_value = _response(
            payload={"id": "PAY-1", "status": "CREATED", "approval_url": "https://approve"}
        )

        result = client.create_payment("SF-1", Decimal("10.005"), "USD")

        assert result.transaction_id == "PAY-1"
        assert result.approval_url == "https://approve"
        args, kwargs = mock_post.call_args
        assert args[0] == "http://gateway.test/payments"
        assert kwargs["json"] == {"reference": "SF-1", "amount": "10.01", "currency": "USD"}
        assert kwargs["timeout"] == 2
        assert kwargs["headers"]["Idempotency-Key"]

    @patch("storefront.services.payment_gateway.requests.post")
    def test_capture_uses_stable_idempotency_key(self, mock_post, client):
        mock_post.return_value = _response(payload={"id": "CAP-1", "status": "COMPLETED"})

        capture = client.capture_payment("PAY-1", "PAYER-1")

        assert capture.completed is True
        assert mock_post.call_args.kwargs["headers"] == {"Idempotency-Key": "capture-PAY-1"}

    @patch("storefront.services.payment_gateway.requests.post")
    def test_refund_carries_refund_id(self, mock_post, client):
        mock_post.return_value = _response(payload={"id": "RF-1", "status": "PENDING"})

        refund = client.refund_capture("CAP-1", Decimal("5"), "USD", 42)

        assert refund.refund_id == "RF-1"
        assert mock_post.call_args.args[0] == "http://gateway.test/captures/CAP-1/refund"
        assert mock_post.call_args.kwargs["json"]["custom_id"] == "42"
        assert mock_post.call_args.kwargs["headers"] == {"Idempotency-Key": "refund-42"}

    @patch("storefront.services.payment_gateway.requests.post")
    def test_http_error_is_not_retried(self, mock_post, client):
        mock_post.return_value = _response(status_code=500)

        with pytest.raises(PaymentGatewayError) as exc:
            client.capture_payment("PAY-1", "PAYER-1")

        assert mock_post.call_count == 1
        assert exc.value.details == {"path": "/payments/PAY-1/capture", "status": 500}

    @patch("storefront.services.payment_gateway.requests.post")
    def test_connection_error_retried_then_raised(self, mock_post, client):
        mock_post.side_effect = requests.ConnectionError("down")

        with pytest.raises(PaymentGatewayError, match="unavailable"):
            client.capture_payment("PAY-1", "PAYER-1")

        assert mock_post.call_count == 3
        keys = {c.kwargs["headers"]["Idempotency-Key"] for c in mock_post.call_args_list}
        assert keys == {"capture-PAY-1"}

    @patch("storefront.services.payment_gateway.requests.post")
    def test_timeout_recovers(self, mock_post, client):
        mock_post.side_effect = [requests.Timeout("slow"), _response(payload={"id": "PAY-2"})]

        result = client.create_payment("SF-2", Decimal("1"), "EUR")

        assert result.transaction_id == "PAY-2"
        assert result.status == "CREATED"
        first, second = mock_post.call_args_list
        assert first.kwargs["headers"] == second.kwargs["headers"]
