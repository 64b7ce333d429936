from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Integer, ForeignKey, String, DateTime, Numeric, JSON
from sqlalchemy.orm import relationship

from storefront.data.database import Base


def _now():
    return datetime.now(timezone.utc)


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    order_number = Column(String, nullable=False, unique=True)
    cart_id = Column(Integer, ForeignKey("carts.id"), nullable=True)
    user_id = Column(Integer, nullable=True, index=True)
    session_id = Column(String, nullable=True)

    # trzy niezalezne maszyny stanow, patrz domain/states.py
    status = Column(String, nullable=False, default="pending")
    payment_status = Column(String, nullable=False, default="pending")
    refund_status = Column(String, nullable=False, default="none")
    # towar wrocil do magazynu (anulowanie albo pelny zwrot)
    stock_released = Column(Boolean, nullable=False, default=False)

    subtotal = Column(Numeric(10, 2), nullable=False)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(10, 2), nullable=False, default=0)
    shipping_amount = Column(Numeric(10, 2), nullable=False, default=0)
    total_amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")

    coupon_id = Column(Integer, ForeignKey("coupons.id"), nullable=True)
    shipping_method = Column(String, nullable=True)
    billing_address = Column(JSON, nullable=False)
    shipping_address = Column(JSON, nullable=False)
    customer_email = Column(String, nullable=True)

    tracking_number = Column(String, nullable=True)
    carrier = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    items = relationship(
        "OrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItemModel.id",
    )
    notes = relationship(
        "OrderNoteModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderNoteModel.id",
    )
