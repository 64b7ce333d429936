# storefront/services/payment_validation.py
from dataclasses import dataclass, field
from decimal import InvalidOperation

from sqlalchemy.orm import Session

from storefront.data.models import OrderModel, PaymentModel
from storefront.domain.errors import NotFoundError
from storefront.domain.states import OrderPaymentStatus, OrderStatus, PaymentStatus
from storefront.repos.order_repo import OrderRepo
from storefront.repos.payment_repo import PaymentRepo
from storefront.utils.clock import age_seconds
from storefront.utils.money import amounts_match, to_money
from storefront.utils.settings import (
    ORDER_PAYMENT_WINDOW_SECONDS,
    PAYMENT_EXECUTION_WINDOW_SECONDS,
    SUPPORTED_CURRENCIES,
)
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

# zamowienie w tych stanach platnosci uznajemy za oplacone
_PAID_STATUSES = (
    OrderPaymentStatus.PAID.value,
    OrderPaymentStatus.PARTIALLY_REFUNDED.value,
    OrderPaymentStatus.REFUNDED.value,
)

_PAYMENT_STATUS_ERRORS = {
    PaymentStatus.COMPLETED.value: "Payment has already been completed",
    PaymentStatus.FAILED.value: "Payment has already failed",
    PaymentStatus.CANCELLED.value: "Payment has been cancelled",
}


@dataclass
class PaymentValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    order: OrderModel | None = None
    payment: PaymentModel | None = None


class PaymentValidationService:
    """Czyste sprawdzenia przed utworzeniem i wykonaniem platnosci - bez zapisow."""

    def __init__(self, db: Session):
        self.orders = OrderRepo(db)
        self.payments = PaymentRepo(db)

    def validate_for_creation(self, order_id: int, amount, currency: str) -> PaymentValidationResult:
        order = self.orders.get_order(order_id)
        if not order:
            raise NotFoundError("Order", details={"order_id": order_id})

        errors: list[str] = []
        warnings: list[str] = []

        if order.payment_status in _PAID_STATUSES:
            errors.append("Order is already paid")

        if order.status == OrderStatus.CANCELLED.value:
            errors.append("Order has been cancelled")

        if age_seconds(order.created_at) > ORDER_PAYMENT_WINDOW_SECONDS:
            errors.append("Order has expired")

        # kwota od klienta musi zgadzac sie z zapisanym totalem
        try:
            amount = to_money(amount)
        except (InvalidOperation, TypeError, ValueError):
            amount = None
        if amount is None or not amounts_match(amount, order.total_amount):
            errors.append(f"Payment amount ({amount}) does not match order total ({to_money(order.total_amount)})")

        if not currency or currency.upper() not in SUPPORTED_CURRENCIES:
            errors.append("Invalid currency code")

        existing = None
        payments = self.payments.get_for_order(order.id)
        if any(p.status == PaymentStatus.COMPLETED.value for p in payments):
            errors.append("Order already has a completed payment")
        else:
            existing = next(
                (p for p in payments if p.status in (PaymentStatus.PENDING.value, PaymentStatus.PROCESSING.value)),
                None,
            )
            if existing:
                warnings.append("Order already has a pending payment")

        if errors:
            logger.warning(f"Payment creation rejected for order {order_id}: {errors}")

        return PaymentValidationResult(
            valid=not errors,
            errors=errors,
            warnings=warnings,
            order=order,
            payment=existing,
        )

    def validate_for_execution(self, transaction_id: str, order_id: int, payer_id: str) -> PaymentValidationResult:
        if not transaction_id or not payer_id:
            return PaymentValidationResult(valid=False, errors=["Payment ID and Payer ID are required for execution"])

        payment = self.payments.get_by_transaction_id(transaction_id)
        if not payment or payment.order_id != order_id:
            return PaymentValidationResult(valid=False, errors=["Payment not found for this order"])

        errors: list[str] = []

        if payment.status in _PAYMENT_STATUS_ERRORS:
            errors.append(_PAYMENT_STATUS_ERRORS[payment.status])
        elif payment.status not in (PaymentStatus.PENDING.value, PaymentStatus.PROCESSING.value):
            errors.append(f"Payment is in invalid state: {payment.status}")

        # stara autoryzacja nie moze byc odtworzona
        if age_seconds(payment.created_at) > PAYMENT_EXECUTION_WINDOW_SECONDS:
            errors.append("Payment has expired")

        order = self.orders.get_order(order_id)
        if order is None:
            errors.append("Order not found")
        else:
            if order.status != OrderStatus.PENDING.value:
                errors.append(f"Order is not in pending state: {order.status}")
            if order.payment_status in _PAID_STATUSES:
                errors.append("Order is already paid")

        if errors:
            logger.warning(f"Payment execution rejected for {transaction_id}: {errors}")

        return PaymentValidationResult(
            valid=not errors,
            errors=errors,
            order=order,
            payment=payment,
        )
