from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Numeric, DateTime, Boolean, Text

from storefront.data.database import Base


class CouponModel(Base):
    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True)
    code = Column(String, nullable=False, unique=True)  # zawsze upper-case
    description = Column(Text, nullable=True)

    # w API to pole nazywa sie "type"
    discount_type = Column(String, nullable=False)  # percentage, fixed, free_shipping
    value = Column(Numeric(10, 2), nullable=False, default=0)

    minimum_order_amount = Column(Numeric(10, 2), nullable=True)
    maximum_discount_amount = Column(Numeric(10, 2), nullable=True)

    usage_limit = Column(Integer, nullable=True)
    usage_count = Column(Integer, nullable=False, default=0)
    per_user_limit = Column(Integer, nullable=True)

    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
