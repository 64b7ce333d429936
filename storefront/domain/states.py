# storefront/domain/states.py
from enum import Enum

from storefront.domain.errors import InvalidTransitionError, ValidationError


class CartStatus(str, Enum):
    ACTIVE = "active"
    CHECKOUT = "checkout"
    CONVERTED = "converted"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    ON_HOLD = "on_hold"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class OrderPaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    PARTIALLY_REFUNDED = "partially_refunded"
    REFUNDED = "refunded"


class RefundStatus(str, Enum):
    NONE = "none"
    PARTIAL = "partial"
    FULL = "full"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class RefundRecordStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class RefundType(str, Enum):
    FULL = "full"
    PARTIAL = "partial"
    ITEM_SPECIFIC = "item_specific"


class RefundReasonCode(str, Enum):
    CUSTOMER_REQUEST = "customer_request"
    DEFECTIVE_PRODUCT = "defective_product"
    WRONG_ITEM = "wrong_item"
    NOT_DELIVERED = "not_delivered"
    DUPLICATE_PAYMENT = "duplicate_payment"
    FRAUD = "fraud"
    OTHER = "other"


class CouponType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    FREE_SHIPPING = "free_shipping"


#maszyny stanow - klucz to stan obecny, wartosc to dozwolone stany docelowe
ORDER_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.ON_HOLD, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.ON_HOLD, OrderStatus.CANCELLED},
    OrderStatus.ON_HOLD: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

ORDER_PAYMENT_TRANSITIONS = {
    OrderPaymentStatus.PENDING: {OrderPaymentStatus.PAID, OrderPaymentStatus.FAILED},
    OrderPaymentStatus.PAID: {OrderPaymentStatus.PARTIALLY_REFUNDED, OrderPaymentStatus.REFUNDED},
    OrderPaymentStatus.PARTIALLY_REFUNDED: {
        OrderPaymentStatus.PARTIALLY_REFUNDED,
        OrderPaymentStatus.REFUNDED,
    },
    OrderPaymentStatus.FAILED: set(),
    OrderPaymentStatus.REFUNDED: set(),
}

REFUND_STATUS_TRANSITIONS = {
    RefundStatus.NONE: {RefundStatus.PARTIAL, RefundStatus.FULL},
    RefundStatus.PARTIAL: {RefundStatus.PARTIAL, RefundStatus.FULL},
    RefundStatus.FULL: set(),
}

# zdarzenia dla notification collaboratora
ORDER_STATUS_EVENTS = {
    OrderStatus.PROCESSING: "order.processing",
    OrderStatus.ON_HOLD: "order.on_hold",
    OrderStatus.SHIPPED: "order.shipped",
    OrderStatus.DELIVERED: "order.completed",
    OrderStatus.CANCELLED: "order.cancelled",
}

ACTIVE_PAYMENT_STATUSES = (PaymentStatus.PENDING.value, PaymentStatus.PROCESSING.value)


def can_transition(transitions: dict, current, requested) -> bool:
    return requested in transitions.get(current, set())


def ensure_transition(entity: str, transitions: dict, current, requested):
    """Rzuca InvalidTransitionError jesli przejscie nie jest dozwolone."""
    enum_type = type(next(iter(transitions)))
    current = enum_type(current)
    try:
        requested = enum_type(requested)
    except ValueError:
        raise ValidationError(f"Unknown {entity.lower()} status: {requested}")
    if not can_transition(transitions, current, requested):
        raise InvalidTransitionError(entity, current.value, requested.value)
    return requested
