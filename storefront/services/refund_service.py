# storefront/services/refund_service.py
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from storefront.data.database import on_commit, transaction
from storefront.data.models import OrderModel, PaymentModel, RefundItemModel, RefundModel
from storefront.domain.errors import (
    InvalidTransitionError,
    NotFoundError,
    PaymentGatewayError,
    RefundLimitExceededError,
    ValidationError,
)
from storefront.domain.states import (
    OrderPaymentStatus,
    OrderStatus,
    ORDER_PAYMENT_TRANSITIONS,
    REFUND_STATUS_TRANSITIONS,
    RefundReasonCode,
    RefundRecordStatus,
    RefundStatus,
    RefundType,
    ensure_transition,
)
from storefront.repos.order_repo import OrderRepo
from storefront.repos.payment_repo import PaymentRepo
from storefront.repos.refund_repo import RefundRepo
from storefront.services.notification_service import NotificationService, order_event_payload
from storefront.services.payment_gateway import PaymentGatewayClient
from storefront.services.stock_ledger import StockLedger
from storefront.utils.clock import age_seconds, as_utc, utcnow
from storefront.utils.money import ZERO, to_money
from storefront.utils.settings import REFUND_WINDOW_DAYS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

STATISTICS_TIMEFRAMES = {"7d": 7, "30d": 30, "90d": 90, "1y": 365}

PROCESSING_TIMES = {
    RefundType.FULL.value: "1-3 business days",
    RefundType.PARTIAL.value: "2-5 business days",
    RefundType.ITEM_SPECIFIC.value: "3-7 business days",
}

# suma zwrotow, ktore nie zostaly odrzucone, nie moze przekroczyc kwoty platnosci
_OPEN_STATUSES = (RefundRecordStatus.PENDING.value, RefundRecordStatus.COMPLETED.value)


@dataclass
class RefundItemRequest:
    order_item_id: int
    quantity: int
    reason: str | None = None


@dataclass
class RefundRequest:
    order_id: int
    refund_type: str
    reason: str
    reason_code: str = RefundReasonCode.OTHER.value
    amount: Decimal | None = None
    items: List[RefundItemRequest] = field(default_factory=list)
    initiated_by: int | None = None
    notify_customer: bool = True


class RefundService:
    """
    Zwroty platnosci. Jedna transakcja: blokada zamowienia i platnosci, sprawdzenie
    kwalifikacji, suma biezaca zwrotow <= kwota platnosci, zapis zwrotu i statusow.
    Pelny zwrot przywraca stan magazynowy wszystkich pozycji (raz na zamowienie,
    patrz OrderModel.stock_released), czesciowy i pozycjami - nie przywraca.
    Odrzucony pelny zwrot zdejmuje ten stan z powrotem, o ile towar jest dostepny.
    """

    def __init__(
        self,
        db: Session,
        gateway: PaymentGatewayClient | None = None,
        notifier: NotificationService | None = None,
    ):
        self.db = db
        self.repo = RefundRepo(db)
        self.orders = OrderRepo(db)
        self.payments = PaymentRepo(db)
        self.stock = StockLedger(db)
        self.gateway = gateway
        self.notifier = notifier or NotificationService()

    def calculate_refund_amount(
        self,
        refund_type: str,
        order: OrderModel,
        payment: PaymentModel,
        amount: Decimal | None = None,
        items: List[RefundItemRequest] | None = None,
    ) -> Decimal:
        refund_type = self._parse_type(refund_type)

        if refund_type == RefundType.FULL:
            return to_money(payment.amount)

        if refund_type == RefundType.PARTIAL:
            if amount is None or to_money(amount) <= ZERO:
                raise ValidationError("Refund amount must be greater than zero")
            if to_money(amount) > to_money(payment.amount):
                raise ValidationError("Refund amount cannot exceed the payment amount")
            return to_money(amount)

        lines = self._resolve_items(order, items or [])
        return to_money(sum((to_money(item.unit_price) * quantity for item, quantity, _ in lines), ZERO))

    def process_refund(self, request: RefundRequest) -> RefundModel:
        refund_type = self._parse_type(request.refund_type)
        reason_code = self._parse_reason_code(request.reason_code)
        if not request.reason or not request.reason.strip():
            raise ValidationError("Refund reason is required")

        with transaction(self.db):
            order = self.orders.get_order(request.order_id, for_update=True)
            if not order:
                raise NotFoundError("Order", details={"order_id": request.order_id})
            payment = self.payments.get_completed_for_order(order.id, for_update=True)
            self._check_eligibility(order, payment)

            amount = self.calculate_refund_amount(refund_type, order, payment, request.amount, request.items)

            already = self.repo.sum_for_payment(payment.id, _OPEN_STATUSES)
            remaining = to_money(payment.amount) - already
            if amount > remaining:
                logger.warning(
                    f"Refund of {amount} for order {order.order_number} rejected, {remaining} refundable"
                )
                raise RefundLimitExceededError(
                    f"Refund amount {amount} exceeds the refundable amount {remaining}",
                    details={
                        "requested": str(amount),
                        "refundable": str(remaining),
                        "payment_amount": str(to_money(payment.amount)),
                    },
                )

            refund = self.repo.add_refund(
                RefundModel(
                    order_id=order.id,
                    payment_id=payment.id,
                    amount=amount,
                    reason=request.reason.strip(),
                    reason_code=reason_code.value,
                    refund_type=refund_type.value,
                    status=RefundRecordStatus.PENDING.value,
                    initiated_by=request.initiated_by,
                    notify_customer=request.notify_customer,
                )
            )

            if refund_type == RefundType.ITEM_SPECIFIC:
                for item, quantity, reason in self._resolve_items(order, request.items):
                    self.repo.add_refund_item(
                        RefundItemModel(refund=refund, order_item_id=item.id, quantity=quantity, reason=reason)
                    )

            self._advance_refund_state(order, payment, already + amount)

            if refund_type == RefundType.FULL and not order.stock_released:
                self.stock.restore_lines((i.product_id, i.quantity) for i in self.orders.get_order_items(order.id))
                order.stock_released = True

            self.db.flush()

            if request.notify_customer:
                self.notifier.dispatch_after_commit(
                    self.db,
                    "order.refunded",
                    order_event_payload(order, refund_id=refund.id, refund_amount=str(amount), refund_type=refund_type.value),
                )
            if self.gateway is not None and payment.capture_id:
                refund_id = refund.id
                on_commit(self.db, lambda: self._submit_to_gateway(refund_id))

        logger.info(
            f"Refund {refund.id} ({refund_type.value}, {amount}) created for order {order.order_number}"
        )
        return refund

    def complete_refund(self, refund_id: int, refund_transaction_id: str | None = None) -> RefundModel:
        with transaction(self.db):
            refund = self._get_for_update(refund_id)

            if refund.status == RefundRecordStatus.COMPLETED.value:
                if refund_transaction_id is None or refund.refund_transaction_id == refund_transaction_id:
                    # powtorka potwierdzenia
                    return refund
                raise InvalidTransitionError("Refund", refund.status, RefundRecordStatus.COMPLETED.value)
            if refund.status != RefundRecordStatus.PENDING.value:
                raise InvalidTransitionError("Refund", refund.status, RefundRecordStatus.COMPLETED.value)

            payment = self.payments.get_payment(refund.payment_id, for_update=True)
            completed = self.repo.sum_for_payment(payment.id, (RefundRecordStatus.COMPLETED.value,))
            if completed + to_money(refund.amount) > to_money(payment.amount):
                raise RefundLimitExceededError(
                    f"Completing refund {refund.id} would exceed the payment amount",
                    details={"completed": str(completed), "amount": str(to_money(refund.amount))},
                )

            refund.status = RefundRecordStatus.COMPLETED.value
            refund.refund_transaction_id = refund_transaction_id
            refund.completed_at = utcnow()
            self.db.flush()

        logger.info(f"Refund {refund.id} completed ({refund_transaction_id})")
        return refund

    def fail_refund(self, refund_id: int, reason: str) -> RefundModel:
        with transaction(self.db):
            refund = self._get_for_update(refund_id)
            if refund.status == RefundRecordStatus.FAILED.value:
                return refund
            if refund.status != RefundRecordStatus.PENDING.value:
                raise InvalidTransitionError("Refund", refund.status, RefundRecordStatus.FAILED.value)

            order = self.orders.get_order(refund.order_id, for_update=True)
            payment = self.payments.get_payment(refund.payment_id, for_update=True)

            refund.status = RefundRecordStatus.FAILED.value
            refund.failure_reason = reason
            self.db.flush()

            # kwota odrzuconego zwrotu wraca do puli, statusy liczone od nowa
            remaining = self.repo.sum_for_payment(payment.id, _OPEN_STATUSES)
            payment.refunded_amount = remaining
            refund_status, payment_status = self._derive_statuses(remaining, payment.amount)
            payment.refund_status = refund_status.value
            order.refund_status = refund_status.value
            order.payment_status = payment_status.value

            # anulowane zamowienie i tak ma towar z powrotem w magazynie
            if (
                refund.refund_type == RefundType.FULL.value
                and order.stock_released
                and order.status != OrderStatus.CANCELLED.value
            ):
                self._reclaim_stock(order)
            self.db.flush()

        logger.warning(f"Refund {refund.id} failed: {reason}")
        return refund

    #query
    def get_refund(self, refund_id: int) -> RefundModel:
        refund = self.repo.get_refund(refund_id)
        if not refund:
            raise NotFoundError("Refund", details={"refund_id": refund_id})
        return refund

    def get_refund_history(self, order_id: int) -> Dict[str, Any]:
        order = self.orders.get_order(order_id)
        if not order:
            raise NotFoundError("Order", details={"order_id": order_id})

        refunds = self.repo.get_for_order(order_id)
        completed = [r for r in refunds if r.status == RefundRecordStatus.COMPLETED.value]
        pending = [r for r in refunds if r.status == RefundRecordStatus.PENDING.value]
        return {
            "order_id": order.id,
            "refund_status": order.refund_status,
            "refunds": refunds,
            "total_refunded": to_money(sum((to_money(r.amount) for r in completed), ZERO)),
            "pending_amount": to_money(sum((to_money(r.amount) for r in pending), ZERO)),
        }

    def get_refund_statistics(self, timeframe: str = "30d") -> Dict[str, Any]:
        if timeframe not in STATISTICS_TIMEFRAMES:
            raise ValidationError(
                f"Unsupported timeframe: {timeframe}",
                details={"allowed": list(STATISTICS_TIMEFRAMES)},
            )

        since = utcnow() - timedelta(days=STATISTICS_TIMEFRAMES[timeframe])
        refunds = [r for r in self.repo.get_since(since) if r.status == RefundRecordStatus.COMPLETED.value]
        payments_total = self.repo.sum_completed_payments_since(since)

        total_amount = to_money(sum((to_money(r.amount) for r in refunds), ZERO))
        count = len(refunds)

        by_reason: Dict[str, Dict[str, Any]] = defaultdict(lambda: {"count": 0, "total_amount": ZERO})
        by_month: Dict[str, Dict[str, Any]] = defaultdict(lambda: {"refunds": 0, "amount": ZERO})
        for r in refunds:
            by_reason[r.reason_code]["count"] += 1
            by_reason[r.reason_code]["total_amount"] += to_money(r.amount)
            month = f"{as_utc(r.created_at):%Y-%m}"
            by_month[month]["refunds"] += 1
            by_month[month]["amount"] += to_money(r.amount)

        reasons = sorted(
            (
                {
                    "reason": reason,
                    "count": stats["count"],
                    "percentage": round(stats["count"] * 100 / count, 2),
                    "total_amount": to_money(stats["total_amount"]),
                }
                for reason, stats in by_reason.items()
            ),
            key=lambda row: row["count"],
            reverse=True,
        )

        return {
            "timeframe": timeframe,
            "total_refunds": count,
            "total_refund_amount": total_amount,
            "average_refund_amount": to_money(total_amount / count) if count else ZERO,
            "refund_rate": round(float(total_amount * 100 / payments_total), 2) if payments_total > ZERO else 0.0,
            "refund_reasons": reasons,
            "monthly_trends": [
                {"month": month, "refunds": stats["refunds"], "amount": to_money(stats["amount"])}
                for month, stats in sorted(by_month.items(), reverse=True)[:12]
            ],
            "processing_times": dict(PROCESSING_TIMES),
        }

    #helpers
    def _submit_to_gateway(self, refund_id: int) -> None:
        refund = self.repo.get_refund(refund_id)
        payment = self.payments.get_payment(refund.payment_id)
        try:
            result = self.gateway.refund_capture(payment.capture_id, refund.amount, payment.currency, refund.id)
        except PaymentGatewayError as e:
            # zwrot zostaje pending, potwierdzi go webhook albo operator
            logger.warning(f"Refund {refund_id} not submitted to gateway: {e.message}")
            return

        if result.status.upper() == "COMPLETED":
            self.complete_refund(refund_id, result.refund_id)
        else:
            logger.info(f"Refund {refund_id} accepted by gateway as {result.status}, waiting for confirmation")

    def _reclaim_stock(self, order: OrderModel) -> None:
        # towar mogl juz zostac sprzedany ponownie - wtedy stan zostaje bez zmian
        lines = [(i.product_id, i.quantity) for i in self.orders.get_order_items(order.id)]
        if self.stock.reclaim_lines(lines):
            order.stock_released = False
        else:
            logger.warning(f"Stock for order {order.order_number} stays released after failed refund")

    def _get_for_update(self, refund_id: int) -> RefundModel:
        refund = self.repo.get_refund(refund_id, for_update=True)
        if not refund:
            raise NotFoundError("Refund", details={"refund_id": refund_id})
        return refund

    def _check_eligibility(self, order: OrderModel, payment: PaymentModel | None) -> None:
        errors = []
        if order.payment_status not in (OrderPaymentStatus.PAID.value, OrderPaymentStatus.PARTIALLY_REFUNDED.value):
            errors.append(f"Order payment status '{order.payment_status}' does not allow refunds")
        if order.status == OrderStatus.CANCELLED.value:
            errors.append("Cancelled orders cannot be refunded")
        if age_seconds(order.created_at) > REFUND_WINDOW_DAYS * 24 * 60 * 60:
            errors.append(f"Refund window of {REFUND_WINDOW_DAYS} days has expired")
        if payment is None:
            errors.append("Order has no completed payment")

        if errors:
            logger.warning(f"Order {order.order_number} is not eligible for refund: {errors}")
            raise ValidationError(
                "Order is not eligible for refund",
                code="REFUND_NOT_ALLOWED",
                details={"errors": errors},
            )

    def _resolve_items(self, order: OrderModel, items: List[RefundItemRequest]) -> list:
        if not items:
            raise ValidationError("Items are required for an item-specific refund")

        requested: Dict[int, int] = defaultdict(int)
        reasons: Dict[int, str | None] = {}
        for i in items:
            requested[i.order_item_id] += i.quantity
            reasons.setdefault(i.order_item_id, i.reason)

        found = self.orders.get_order_items_by_ids(order.id, list(requested))
        # pozycje z wczesniejszych zwrotow, ktore nie zostaly odrzucone
        refunded = self.repo.refunded_item_quantities(order.id, _OPEN_STATUSES)
        lines = []
        for order_item_id, quantity in requested.items():
            item = found.get(order_item_id)
            if item is None:
                raise ValidationError(
                    f"Order item {order_item_id} does not belong to this order",
                    details={"order_item_id": order_item_id},
                )
            already = refunded.get(order_item_id, 0)
            if quantity <= 0 or quantity > item.quantity - already:
                raise ValidationError(
                    f"Invalid refund quantity for order item {order_item_id}",
                    details={"requested": quantity, "ordered": item.quantity, "already_refunded": already},
                )
            lines.append((item, quantity, reasons[order_item_id]))
        return lines

    def _advance_refund_state(self, order: OrderModel, payment: PaymentModel, refunded_total: Decimal) -> None:
        refund_status, payment_status = self._derive_statuses(refunded_total, payment.amount)
        ensure_transition("Order refund", REFUND_STATUS_TRANSITIONS, order.refund_status, refund_status)
        ensure_transition("Order payment", ORDER_PAYMENT_TRANSITIONS, order.payment_status, payment_status)

        payment.refunded_amount = to_money(refunded_total)
        payment.refund_status = refund_status.value
        order.refund_status = refund_status.value
        order.payment_status = payment_status.value

    @staticmethod
    def _derive_statuses(refunded_total: Decimal, payment_amount: Decimal) -> tuple[RefundStatus, OrderPaymentStatus]:
        refunded_total = to_money(refunded_total)
        if refunded_total <= ZERO:
            return RefundStatus.NONE, OrderPaymentStatus.PAID
        if refunded_total >= to_money(payment_amount):
            return RefundStatus.FULL, OrderPaymentStatus.REFUNDED
        return RefundStatus.PARTIAL, OrderPaymentStatus.PARTIALLY_REFUNDED

    @staticmethod
    def _parse_type(refund_type) -> RefundType:
        try:
            return RefundType(refund_type)
        except ValueError:
            raise ValidationError(f"Unknown refund type: {refund_type}")

    @staticmethod
    def _parse_reason_code(reason_code) -> RefundReasonCode:
        try:
            return RefundReasonCode(reason_code or RefundReasonCode.OTHER.value)
        except ValueError:
            raise ValidationError(f"Unknown refund reason code: {reason_code}")
