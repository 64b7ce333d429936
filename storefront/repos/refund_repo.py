# storefront/repos/refund_repo.py
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from storefront.data.models import RefundModel, RefundItemModel, PaymentModel
from storefront.utils.money import to_money


class RefundRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_refund(self, refund_id: int, for_update: bool = False) -> RefundModel | None:
        stmt = select(RefundModel).where(RefundModel.id == refund_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalar_one_or_none()

    def add_refund(self, refund: RefundModel) -> RefundModel:
        self.db.add(refund)
        self.db.flush()
        return refund

    def add_refund_item(self, item: RefundItemModel) -> RefundItemModel:
        self.db.add(item)
        self.db.flush()
        return item

    def sum_for_payment(self, payment_id: int, statuses: tuple) -> Decimal:
        total = self.db.execute(
            select(func.coalesce(func.sum(RefundModel.amount), 0)).where(
                RefundModel.payment_id == payment_id,
                RefundModel.status.in_(statuses),
            )
        ).scalar_one()
        return to_money(total)

    def refunded_item_quantities(self, order_id: int, statuses: tuple) -> dict[int, int]:
        rows = self.db.execute(
            select(RefundItemModel.order_item_id, func.sum(RefundItemModel.quantity))
            .join(RefundModel, RefundItemModel.refund_id == RefundModel.id)
            .where(RefundModel.order_id == order_id, RefundModel.status.in_(statuses))
            .group_by(RefundItemModel.order_item_id)
        ).all()
        return {order_item_id: int(quantity) for order_item_id, quantity in rows}

    def get_for_order(self, order_id: int) -> list[RefundModel]:
        return list(
            self.db.execute(
                select(RefundModel)
                .where(RefundModel.order_id == order_id)
                .order_by(RefundModel.created_at.desc(), RefundModel.id.desc())
            ).scalars().all()
        )

    def get_since(self, since: datetime) -> list[RefundModel]:
        return list(
            self.db.execute(
                select(RefundModel).where(RefundModel.created_at >= since).order_by(RefundModel.created_at)
            ).scalars().all()
        )

    def sum_completed_payments_since(self, since: datetime) -> Decimal:
        total = self.db.execute(
            select(func.coalesce(func.sum(PaymentModel.amount), 0)).where(
                PaymentModel.created_at >= since,
                PaymentModel.status == "completed",
            )
        ).scalar_one()
        return to_money(total)
