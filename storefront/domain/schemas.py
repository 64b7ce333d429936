# storefront/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import Any, Dict, List
from decimal import Decimal
from datetime import datetime

from storefront.domain.states import CouponType, RefundReasonCode, RefundType


# ---------- carts ----------

class CartItemIn(BaseModel):
    """Schema dla dodawania produktu do koszyka."""

    product_id: int = Field(..., gt=0, description="ID produktu (musi byc > 0)")
    quantity: int = Field(..., gt=0, description="Ilosc produktu (musi byc > 0)")
    configuration: Dict[str, Any] = Field(default_factory=dict, description="Wybrane warianty produktu")


class CartItemUpdate(BaseModel):
    quantity: int = Field(..., gt=0)


class CartMergeIn(BaseModel):
    session_id: str = Field(..., min_length=1)
    user_id: int = Field(..., gt=0)


class CouponApplyIn(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)


class CartLineOut(BaseModel):
    id: int
    product_id: int
    product_name: str
    product_sku: str
    quantity: int
    configuration: Dict[str, Any]
    unit_price: Decimal
    line_total: Decimal
    price_changed: bool
    available: bool


class CartOut(BaseModel):
    """Schema dla koszyka (response). Sumy zawsze przeliczone z aktualnych cen."""

    cart_id: int
    session_id: str | None = None
    user_id: int | None = None
    status: str
    items: List[CartLineOut]
    coupon_code: str | None = None
    coupon_errors: List[str] = []
    free_shipping: bool = False
    subtotal: Decimal
    discount: Decimal
    total: Decimal
    item_count: int
    currency: str
    expires_at: datetime | None = None


# ---------- coupons ----------

class CouponIn(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)
    type: CouponType
    value: Decimal = Field(..., ge=0)
    description: str | None = None
    minimum_order_amount: Decimal | None = Field(None, ge=0)
    maximum_discount_amount: Decimal | None = Field(None, ge=0)
    usage_limit: int | None = Field(None, gt=0)
    per_user_limit: int | None = Field(None, gt=0)
    start_date: datetime | None = None
    end_date: datetime | None = None
    is_active: bool = True


class CouponUpdate(BaseModel):
    type: CouponType | None = None
    value: Decimal | None = Field(None, ge=0)
    description: str | None = None
    minimum_order_amount: Decimal | None = Field(None, ge=0)
    maximum_discount_amount: Decimal | None = Field(None, ge=0)
    usage_limit: int | None = Field(None, gt=0)
    per_user_limit: int | None = Field(None, gt=0)
    start_date: datetime | None = None
    end_date: datetime | None = None
    is_active: bool | None = None


class CouponOut(BaseModel):
    """Kolumna discount_type wystawiona w API jako type."""

    id: int
    code: str
    type: str = Field(validation_alias="discount_type")
    value: Decimal
    description: str | None = None
    minimum_order_amount: Decimal | None = None
    maximum_discount_amount: Decimal | None = None
    usage_limit: int | None = None
    usage_count: int
    per_user_limit: int | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class CouponValidateIn(BaseModel):
    code: str = Field(..., min_length=1)
    subtotal: Decimal = Field(..., ge=0)
    user_id: int | None = None


class CouponValidationOut(BaseModel):
    valid: bool
    errors: List[str]
    discount: Decimal
    free_shipping: bool = False


# ---------- orders ----------

class AddressIn(BaseModel):
    name: str = Field(..., min_length=1)
    line1: str = Field(..., min_length=1)
    line2: str | None = None
    city: str = Field(..., min_length=1)
    postal_code: str = Field(..., min_length=1)
    country: str = Field(..., min_length=2, max_length=2)
    phone: str | None = None


class OrderCreate(BaseModel):
    """Schema dla tworzenia zamowienia z aktywnego koszyka sesji/uzytkownika."""

    session_id: str | None = None
    user_id: int | None = Field(None, gt=0)
    billing_address: AddressIn
    shipping_address: AddressIn
    shipping_method: str = "standard"
    customer_email: str | None = Field(None, max_length=254)
    notes: str | None = Field(None, max_length=2000)


class OrderStatusUpdate(BaseModel):
    status: str
    tracking_number: str | None = None
    carrier: str | None = None
    note: str | None = None
    author: str | None = None


class OrderNoteIn(BaseModel):
    body: str = Field(..., min_length=1, max_length=2000)
    author: str | None = None


class OrderItemOut(BaseModel):
    id: int
    product_id: int
    product_name: str
    product_sku: str
    unit_price: Decimal
    quantity: int
    total_price: Decimal
    configuration: str

    model_config = ConfigDict(from_attributes=True)


class OrderNoteOut(BaseModel):
    id: int
    author: str | None = None
    body: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    """Schema dla zamowienia (response)."""

    id: int
    order_number: str
    user_id: int | None = None
    status: str
    payment_status: str
    refund_status: str
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    shipping_amount: Decimal
    total_amount: Decimal
    currency: str
    shipping_method: str | None = None
    billing_address: Dict[str, Any]
    shipping_address: Dict[str, Any]
    customer_email: str | None = None
    tracking_number: str | None = None
    carrier: str | None = None
    items: List[OrderItemOut] = []
    notes: List[OrderNoteOut] = []
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderListOut(BaseModel):
    orders: List[OrderOut]
    total: int
    page: int
    limit: int
    pages: int


# ---------- payments ----------

class PaymentCreate(BaseModel):
    order_id: int = Field(..., gt=0)
    amount: Decimal = Field(..., gt=0)
    currency: str = Field("USD", min_length=3, max_length=3)


class PaymentExecute(BaseModel):
    transaction_id: str = Field(..., min_length=1)
    order_id: int = Field(..., gt=0)
    payer_id: str = Field(..., min_length=1)


class PaymentOut(BaseModel):
    id: int
    order_id: int
    transaction_id: str
    capture_id: str | None = None
    amount: Decimal
    currency: str
    status: str
    failure_reason: str | None = None
    refunded_amount: Decimal
    refund_status: str
    created_at: datetime
    completed_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class PaymentCreateOut(BaseModel):
    payment: PaymentOut
    reused: bool
    approval_url: str | None = None
    warnings: List[str] = []

    model_config = ConfigDict(from_attributes=True)


class WebhookOut(BaseModel):
    event_id: str
    status: str


# ---------- refunds ----------

class RefundItemIn(BaseModel):
    order_item_id: int = Field(..., gt=0)
    quantity: int = Field(..., gt=0)
    reason: str | None = None


class RefundCreate(BaseModel):
    order_id: int = Field(..., gt=0)
    refund_type: RefundType
    reason: str = Field(..., min_length=1, max_length=1000)
    reason_code: RefundReasonCode = RefundReasonCode.OTHER
    amount: Decimal | None = Field(None, gt=0)
    items: List[RefundItemIn] = []
    initiated_by: int | None = None
    notify_customer: bool = True


class RefundCompleteIn(BaseModel):
    refund_transaction_id: str = Field(..., min_length=1)


class RefundFailIn(BaseModel):
    reason: str = Field(..., min_length=1)


class RefundItemOut(BaseModel):
    id: int
    order_item_id: int
    quantity: int
    reason: str | None = None

    model_config = ConfigDict(from_attributes=True)


class RefundOut(BaseModel):
    id: int
    order_id: int
    payment_id: int
    amount: Decimal
    reason: str
    reason_code: str
    refund_type: str
    status: str
    refund_transaction_id: str | None = None
    failure_reason: str | None = None
    items: List[RefundItemOut] = []
    created_at: datetime
    completed_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class RefundHistoryOut(BaseModel):
    order_id: int
    refund_status: str
    refunds: List[RefundOut]
    total_refunded: Decimal
    pending_amount: Decimal


class RefundReasonStat(BaseModel):
    reason: str
    count: int
    percentage: float
    total_amount: Decimal


class RefundMonthStat(BaseModel):
    month: str
    refunds: int
    amount: Decimal


class RefundStatisticsOut(BaseModel):
    timeframe: str
    total_refunds: int
    total_refund_amount: Decimal
    average_refund_amount: Decimal
    refund_rate: float
    refund_reasons: List[RefundReasonStat]
    monthly_trends: List[RefundMonthStat]
    processing_times: Dict[str, str]
