from datetime import datetime, timezone

from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, Numeric, Text, Index, text

from storefront.data.database import Base


class PaymentModel(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)

    transaction_id = Column(String, nullable=False, unique=True)  # id zamowienia po stronie bramki
    capture_id = Column(String, nullable=True)
    provider = Column(String, nullable=False, default="gateway")

    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(String, nullable=False, default="pending")  # pending, processing, completed, failed, cancelled
    failure_reason = Column(Text, nullable=True)

    refunded_amount = Column(Numeric(10, 2), nullable=False, default=0)
    refund_status = Column(String, nullable=False, default="none")  # none, partial, full

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # co najwyzej jedna nieterminalna platnosc na zamowienie
    __table_args__ = (
        Index(
            "uq_payments_active_order",
            "order_id",
            unique=True,
            sqlite_where=text("status IN ('pending', 'processing')"),
            postgresql_where=text("status IN ('pending', 'processing')"),
        ),
    )
