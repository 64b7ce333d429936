#storefront/data/models/cart.py
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, Index, text
from sqlalchemy.orm import relationship

from storefront.data.database import Base


def _now():
    return datetime.now(timezone.utc)


class CartModel(Base):
    __tablename__ = "carts"

    id = Column(Integer, primary_key=True)
    session_id = Column(String, nullable=True, index=True)
    user_id = Column(Integer, nullable=True, index=True)

    status = Column(String, nullable=False, default="active")  # active, checkout, converted
    coupon_id = Column(Integer, ForeignKey("coupons.id", ondelete="SET NULL"), nullable=True)
    coupon_code = Column(String, nullable=True)

    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    items = relationship(
        "CartItemModel",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItemModel.id",
    )

    #jeden aktywny koszyk na sesje goscia i jeden na uzytkownika
    __table_args__ = (
        Index(
            "uq_carts_active_guest_session",
            "session_id",
            unique=True,
            sqlite_where=text("status = 'active' AND user_id IS NULL"),
            postgresql_where=text("status = 'active' AND user_id IS NULL"),
        ),
        Index(
            "uq_carts_active_user",
            "user_id",
            unique=True,
            sqlite_where=text("status = 'active' AND user_id IS NOT NULL"),
            postgresql_where=text("status = 'active' AND user_id IS NOT NULL"),
        ),
    )
