# storefront/services/payment_service.py
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Dict

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.data.database import transaction
from storefront.data.models import PaymentModel, WebhookEventModel
from storefront.domain.errors import (
    NotFoundError,
    PaymentGatewayError,
    PaymentStateError,
    ValidationError,
)
from storefront.domain.states import ACTIVE_PAYMENT_STATUSES, OrderPaymentStatus, OrderStatus, PaymentStatus
from storefront.repos.order_repo import OrderRepo
from storefront.repos.payment_repo import PaymentRepo
from storefront.services.notification_service import NotificationService
from storefront.services.order_service import OrderService
from storefront.services.payment_gateway import PaymentGatewayClient
from storefront.services.payment_validation import PaymentValidationService
from storefront.services.refund_service import RefundService
from storefront.utils.clock import utcnow
from storefront.utils.money import to_money
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class PaymentResult:
    payment: PaymentModel
    reused: bool = False
    approval_url: str | None = None
    warnings: list[str] = field(default_factory=list)


class PaymentService:
    """
    Platnosci przez zewnetrzna bramke.
    Wywolania bramki zawsze poza transakcja, zmiany statusu zawsze warunkowe
    (compare-and-set), wiec powtorzone wykonanie albo webhook niczego nie zapisza dwa razy.
    """

    def __init__(
        self,
        db: Session,
        gateway: PaymentGatewayClient | None = None,
        notifier: NotificationService | None = None,
    ):
        self.db = db
        self.repo = PaymentRepo(db)
        self.orders = OrderRepo(db)
        self.validator = PaymentValidationService(db)
        self.gateway = gateway or PaymentGatewayClient()
        self.notifier = notifier or NotificationService()
        self.order_service = OrderService(db, notifier=self.notifier)
        self.refund_service = RefundService(db, gateway=self.gateway, notifier=self.notifier)

    def create_payment(self, order_id: int, amount: Decimal, currency: str) -> PaymentResult:
        check = self.validator.validate_for_creation(order_id, amount, currency)
        if not check.valid:
            raise PaymentStateError(
                "Payment validation failed",
                code="PAYMENT_VALIDATION_FAILED",
                details={"errors": check.errors},
            )

        if check.payment is not None:
            logger.info(f"Reusing active payment {check.payment.transaction_id} for order {order_id}")
            return PaymentResult(payment=check.payment, reused=True, warnings=check.warnings)

        currency = currency.upper()
        created = self.gateway.create_payment(check.order.order_number, to_money(amount), currency)

        try:
            with transaction(self.db):
                order = self.orders.get_order(order_id, for_update=True)
                active = self.repo.get_active_for_order(order_id)
                if active is not None:
                    logger.warning(
                        f"Order {order_id} got an active payment concurrently, gateway payment "
                        f"{created.transaction_id} left unused"
                    )
                    return PaymentResult(payment=active, reused=True)

                if order.payment_status != OrderPaymentStatus.PENDING.value or order.status == OrderStatus.CANCELLED.value:
                    raise PaymentStateError(
                        "Payment validation failed",
                        code="PAYMENT_VALIDATION_FAILED",
                        details={"errors": [f"Order is no longer payable ({order.status}/{order.payment_status})"]},
                    )

                payment = self.repo.add_payment(
                    PaymentModel(
                        order_id=order.id,
                        transaction_id=created.transaction_id,
                        amount=to_money(amount),
                        currency=currency,
                        status=PaymentStatus.PENDING.value,
                    )
                )
        except IntegrityError:
            # unikalny indeks na aktywnej platnosci - przegralismy wyscig
            active = self.repo.get_active_for_order(order_id)
            if active is None:
                raise
            return PaymentResult(payment=active, reused=True)

        logger.info(f"Payment {payment.transaction_id} created for order {order_id} ({payment.amount} {currency})")
        return PaymentResult(payment=payment, approval_url=created.approval_url, warnings=check.warnings)

    def execute_payment(self, transaction_id: str, order_id: int, payer_id: str) -> PaymentModel:
        check = self.validator.validate_for_execution(transaction_id, order_id, payer_id)
        if not check.valid:
            already_done = check.payment is not None and check.payment.status == PaymentStatus.COMPLETED.value
            raise PaymentStateError(
                "Payment has already been completed" if already_done else "Payment cannot be executed",
                code="PAYMENT_ALREADY_COMPLETED" if already_done else "PAYMENT_VALIDATION_FAILED",
                details={"errors": check.errors},
            )
        payment = check.payment

        # tylko z pending - platnosc w processing ma juz capture w toku
        with transaction(self.db):
            if not self.repo.transition_status(
                payment.id, (PaymentStatus.PENDING.value,), {"status": PaymentStatus.PROCESSING.value}
            ):
                logger.warning(f"Payment {transaction_id} is already being executed")
                raise PaymentStateError("Payment is no longer executable", code="PAYMENT_STATE_CHANGED")

        try:
            capture = self.gateway.capture_payment(transaction_id, payer_id)
        except PaymentGatewayError as e:
            self._fail_payment(payment.id, e.message)
            raise PaymentStateError(
                "Payment capture failed",
                code="PAYMENT_CAPTURE_FAILED",
                details={"reason": e.message},
            ) from e

        if not capture.completed:
            self._fail_payment(payment.id, f"Capture returned status {capture.status}")
            raise PaymentStateError(
                "Payment capture failed",
                code="PAYMENT_CAPTURE_FAILED",
                details={"reason": capture.status},
            )

        if self._complete(payment, capture.capture_id):
            logger.info(f"Payment {transaction_id} captured for order {order_id}")
        return payment

    def handle_webhook(self, event: Dict[str, Any]) -> Dict[str, Any]:
        event_id = event.get("id")
        event_type = event.get("event_type")
        if not event_id or not event_type:
            raise ValidationError("Webhook event id and event_type are required")

        handlers: Dict[str, Callable[[Dict[str, Any]], str]] = {
            "PAYMENT.CAPTURE.COMPLETED": self._on_capture_completed,
            "PAYMENT.CAPTURE.DENIED": self._on_capture_denied,
            "PAYMENT.CAPTURE.PENDING": self._on_capture_pending,
            "PAYMENT.CAPTURE.REFUNDED": self._on_capture_refunded,
        }
        resource = event.get("resource") or {}

        try:
            with transaction(self.db):
                if self.repo.get_webhook_event(event_id):
                    logger.info(f"Webhook {event_id} already processed, skipping")
                    return {"event_id": event_id, "status": "duplicate"}

                # zapis eventu w tej samej transakcji co zmiana stanu
                self.repo.add_webhook_event(
                    WebhookEventModel(event_id=event_id, event_type=event_type, payload=event)
                )

                handler = handlers.get(event_type)
                if handler is None:
                    logger.info(f"Unhandled webhook event type {event_type}")
                    outcome = "ignored"
                else:
                    outcome = handler(resource)
        except IntegrityError:
            # ta sama dostawa przetwarzana rownolegle
            logger.info(f"Webhook {event_id} processed concurrently, skipping")
            return {"event_id": event_id, "status": "duplicate"}

        logger.info(f"Webhook {event_id} ({event_type}): {outcome}")
        return {"event_id": event_id, "status": outcome}

    #query
    def get_payment(self, transaction_id: str) -> PaymentModel:
        payment = self.repo.get_by_transaction_id(transaction_id)
        if not payment:
            raise NotFoundError("Payment", details={"transaction_id": transaction_id})
        return payment

    #webhook handlers - wolane wewnatrz transakcji handle_webhook
    def _on_capture_completed(self, resource: Dict[str, Any]) -> str:
        payment = self._payment_from_resource(resource)
        if payment is None:
            return "ignored"
        if payment.status == PaymentStatus.COMPLETED.value:
            return "already_completed"
        if payment.status not in ACTIVE_PAYMENT_STATUSES:
            logger.warning(f"Capture completed for payment {payment.transaction_id} in status {payment.status}")
            return "ignored"

        self._complete(payment, resource.get("id"))
        return "completed"

    def _on_capture_denied(self, resource: Dict[str, Any]) -> str:
        payment = self._payment_from_resource(resource)
        if payment is None or payment.status not in ACTIVE_PAYMENT_STATUSES:
            return "ignored"

        order = self.orders.get_order(payment.order_id, for_update=True)
        self.repo.transition_status(
            payment.id,
            ACTIVE_PAYMENT_STATUSES,
            {"status": PaymentStatus.FAILED.value, "failure_reason": resource.get("reason_code") or "Payment denied"},
        )
        if order.payment_status == OrderPaymentStatus.PENDING.value:
            self.order_service.mark_payment_failed(order, cancel=True)
        return "failed"

    def _on_capture_pending(self, resource: Dict[str, Any]) -> str:
        payment = self._payment_from_resource(resource)
        if payment is None or payment.status != PaymentStatus.PENDING.value:
            return "ignored"
        self.repo.transition_status(payment.id, (PaymentStatus.PENDING.value,), {"status": PaymentStatus.PROCESSING.value})
        return "processing"

    def _on_capture_refunded(self, resource: Dict[str, Any]) -> str:
        refund_id = resource.get("custom_id")
        if not refund_id or not str(refund_id).isdigit():
            logger.warning(f"Refund webhook without a refund reference: {resource.get('id')}")
            return "ignored"
        self.refund_service.complete_refund(int(refund_id), resource.get("id"))
        return "refund_completed"

    #helpers
    def _complete(self, payment: PaymentModel, capture_id: str | None) -> bool:
        """False gdy ten sam capture zostal juz zapisany (np. przez webhook)."""
        with transaction(self.db):
            order = self.orders.get_order(payment.order_id, for_update=True)
            applied = self.repo.transition_status(
                payment.id,
                ACTIVE_PAYMENT_STATUSES,
                {
                    "status": PaymentStatus.COMPLETED.value,
                    "capture_id": capture_id,
                    "completed_at": utcnow(),
                },
            )
            if not applied:
                self.db.refresh(payment)
                if (
                    capture_id
                    and payment.status == PaymentStatus.COMPLETED.value
                    and payment.capture_id == capture_id
                ):
                    logger.info(f"Capture {capture_id} for payment {payment.transaction_id} already recorded")
                    return False
                raise PaymentStateError("Payment has already been completed", code="PAYMENT_ALREADY_COMPLETED")
            self.order_service.mark_paid(order)
        return True

    def _fail_payment(self, payment_id: int, reason: str) -> None:
        with transaction(self.db):
            self.repo.transition_status(
                payment_id,
                ACTIVE_PAYMENT_STATUSES,
                {"status": PaymentStatus.FAILED.value, "failure_reason": reason},
            )
        logger.warning(f"Payment {payment_id} marked as failed: {reason}")

    def _payment_from_resource(self, resource: Dict[str, Any]) -> PaymentModel | None:
        # custom_id = id zamowienia, opcjonalnie payment_id = transaction_id bramki
        transaction_id = resource.get("payment_id")
        if transaction_id:
            payment = self.repo.get_by_transaction_id(transaction_id)
        else:
            order_id = resource.get("custom_id")
            payment = None
            if order_id and str(order_id).isdigit():
                payment = self.repo.get_active_for_order(int(order_id)) or self.repo.get_completed_for_order(int(order_id))

        if payment is None:
            logger.warning(f"Webhook resource {resource.get('id')} does not match any payment")
        return payment
