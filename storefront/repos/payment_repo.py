# storefront/repos/payment_repo.py
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from storefront.data.models import PaymentModel, WebhookEventModel
from storefront.domain.states import ACTIVE_PAYMENT_STATUSES


class PaymentRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_payment(self, payment_id: int, for_update: bool = False) -> PaymentModel | None:
        stmt = select(PaymentModel).where(PaymentModel.id == payment_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_transaction_id(self, transaction_id: str) -> PaymentModel | None:
        return self.db.execute(
            select(PaymentModel).where(PaymentModel.transaction_id == transaction_id)
        ).scalar_one_or_none()

    def get_for_order(self, order_id: int) -> list[PaymentModel]:
        return list(
            self.db.execute(
                select(PaymentModel)
                .where(PaymentModel.order_id == order_id)
                .order_by(PaymentModel.created_at.desc(), PaymentModel.id.desc())
            ).scalars().all()
        )

    def get_active_for_order(self, order_id: int) -> PaymentModel | None:
        return self.db.execute(
            select(PaymentModel).where(
                PaymentModel.order_id == order_id,
                PaymentModel.status.in_(ACTIVE_PAYMENT_STATUSES),
            )
        ).scalar_one_or_none()

    def get_completed_for_order(self, order_id: int, for_update: bool = False) -> PaymentModel | None:
        stmt = (
            select(PaymentModel)
            .where(PaymentModel.order_id == order_id, PaymentModel.status == "completed")
            .order_by(PaymentModel.id.desc())
            .limit(1)
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalar_one_or_none()

    def add_payment(self, payment: PaymentModel) -> PaymentModel:
        self.db.add(payment)
        self.db.flush()
        return payment

    def transition_status(self, payment_id: int, from_statuses: tuple, values: dict) -> bool:
        # compare-and-set na statusie - druga egzekucja tej samej platnosci dostaje 0 rows
        result = self.db.execute(
            update(PaymentModel)
            .where(PaymentModel.id == payment_id, PaymentModel.status.in_(from_statuses))
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    def get_webhook_event(self, event_id: str) -> WebhookEventModel | None:
        return self.db.execute(
            select(WebhookEventModel).where(WebhookEventModel.event_id == event_id)
        ).scalar_one_or_none()

    def add_webhook_event(self, event: WebhookEventModel) -> WebhookEventModel:
        self.db.add(event)
        self.db.flush()
        return event
