from sqlalchemy import Column, Integer, ForeignKey, Text
from sqlalchemy.orm import relationship

from storefront.data.database import Base


class RefundItemModel(Base):
    __tablename__ = "refund_items"

    id = Column(Integer, primary_key=True)
    refund_id = Column(Integer, ForeignKey("refunds.id", ondelete="CASCADE"), nullable=False, index=True)
    order_item_id = Column(Integer, ForeignKey("order_items.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    reason = Column(Text, nullable=True)

    refund = relationship("RefundModel", back_populates="items")
