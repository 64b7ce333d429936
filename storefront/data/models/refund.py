from datetime import datetime, timezone

from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, Numeric, Text, Boolean, CheckConstraint
from sqlalchemy.orm import relationship

from storefront.data.database import Base


class RefundModel(Base):
    __tablename__ = "refunds"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=False, index=True)

    amount = Column(Numeric(10, 2), nullable=False)
    reason = Column(Text, nullable=False)
    reason_code = Column(String, nullable=False, default="other")
    refund_type = Column(String, nullable=False)  # full, partial, item_specific
    status = Column(String, nullable=False, default="pending")  # pending, completed, failed

    refund_transaction_id = Column(String, nullable=True)
    initiated_by = Column(Integer, nullable=True)
    notify_customer = Column(Boolean, nullable=False, default=True)
    failure_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship("RefundItemModel", back_populates="refund", cascade="all, delete-orphan")

    __table_args__ = (CheckConstraint("amount > 0", name="ck_refunds_amount_positive"),)
