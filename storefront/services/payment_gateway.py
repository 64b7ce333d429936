# storefront/services/payment_gateway.py
import uuid
from dataclasses import dataclass
from decimal import Decimal

import requests
from requests import RequestException

from storefront.domain.errors import PaymentGatewayError
from storefront.utils.money import to_money
from storefront.utils.retry import http_retry
from storefront.utils.settings import PAYMENT_GATEWAY_URL, PAYMENT_GATEWAY_TIMEOUT
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class GatewayPayment:
    transaction_id: str
    status: str
    approval_url: str | None = None


@dataclass
class GatewayCapture:
    capture_id: str
    status: str

    @property
    def completed(self) -> bool:
        return self.status.upper() == "COMPLETED"


@dataclass
class GatewayRefund:
    refund_id: str
    status: str


class PaymentGatewayClient:
    """
    Klient REST bramki platnosci. Retry tylko na bledach transportu,
    klucz idempotencji staly dla wszystkich prob jednego wywolania.
    """

    def __init__(self, base_url: str | None = None, timeout: int | None = None):
        self.base_url = (base_url or PAYMENT_GATEWAY_URL).rstrip("/")
        self.timeout = timeout or PAYMENT_GATEWAY_TIMEOUT

    def create_payment(self, reference: str, amount: Decimal, currency: str) -> GatewayPayment:
        data = self._call(
            "/payments",
            {"reference": reference, "amount": str(to_money(amount)), "currency": currency},
            idempotency_key=str(uuid.uuid4()),
        )
        return GatewayPayment(
            transaction_id=data["id"],
            status=data.get("status", "CREATED"),
            approval_url=data.get("approval_url"),
        )

    def capture_payment(self, transaction_id: str, payer_id: str) -> GatewayCapture:
        # ten sam klucz dla kazdej proby capture tej platnosci - bramka nie obciazy dwa razy
        data = self._call(
            f"/payments/{transaction_id}/capture",
            {"payer_id": payer_id},
            idempotency_key=f"capture-{transaction_id}",
        )
        return GatewayCapture(capture_id=data["id"], status=data.get("status", ""))

    def refund_capture(self, capture_id: str, amount: Decimal, currency: str, refund_id: int) -> GatewayRefund:
        data = self._call(
            f"/captures/{capture_id}/refund",
            {"amount": str(to_money(amount)), "currency": currency, "custom_id": str(refund_id)},
            idempotency_key=f"refund-{refund_id}",
        )
        return GatewayRefund(refund_id=data["id"], status=data.get("status", ""))

    def _call(self, path: str, body: dict, idempotency_key: str) -> dict:
        try:
            return self._post(path, body, idempotency_key)
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            logger.warning(f"PaymentGateway POST {path} rejected with status {status}")
            raise PaymentGatewayError(
                "Payment gateway rejected the request",
                details={"path": path, "status": status},
            ) from e
        except RequestException as e:
            logger.warning(f"PaymentGateway POST {path} failed: {e}")
            raise PaymentGatewayError("Payment gateway is unavailable", details={"path": path}) from e

    @http_retry()
    def _post(self, path: str, body: dict, idempotency_key: str) -> dict:
        url = f"{self.base_url}{path}"
        logger.info(f"PaymentGateway POST {url}")

        resp = requests.post(
            url,
            json=body,
            headers={"Idempotency-Key": idempotency_key},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json()
