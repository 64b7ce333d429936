# storefront/services/notification_service.py
from typing import Any, Dict

from sqlalchemy.orm import Session

from storefront.celery_worker import celery_app
from storefront.data.database import on_commit
from storefront.data.models import OrderModel
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def order_event_payload(order: OrderModel, **extra: Any) -> Dict[str, Any]:
    # tylko typy JSON, payload leci przez brokera
    payload = {
        "order_id": order.id,
        "order_number": order.order_number,
        "user_id": order.user_id,
        "customer_email": order.customer_email,
        "status": order.status,
        "payment_status": order.payment_status,
        "refund_status": order.refund_status,
        "total_amount": str(order.total_amount),
        "currency": order.currency,
    }
    payload.update(extra)
    return payload


class NotificationService:
    """
    Serwis do wysylania powiadomien o zdarzeniach cyklu zycia zamowienia.
    Uzywa Celery do asynchronicznego przetwarzania, nigdy nie rzuca wyjatkow
    do wywolujacego - stan zamowienia jest juz zapisany.
    """

    def dispatch(self, event: str, payload: Dict[str, Any]) -> None:
        try:
            dispatch_lifecycle_event.delay(event, payload)
        except Exception as e:
            logger.warning(f"Failed to enqueue notification {event} for order {payload.get('order_id')}: {e}")

    def dispatch_after_commit(self, db: Session, event: str, payload: Dict[str, Any]) -> None:
        """Powiadomienie wychodzi dopiero po commicie transakcji, rollback = brak powiadomienia."""
        on_commit(db, lambda: self.dispatch(event, payload))


@celery_app.task(name="storefront.services.notification_service.dispatch_lifecycle_event")
def dispatch_lifecycle_event(event: str, payload: Dict[str, Any]):
    """
    Celery task - w prawdziwym systemie wyslalby email/SMS/push.
    Teraz tylko loguje.
    """
    logger.info(f"[NOTIFICATION] {event}: order {payload.get('order_id')} ({payload.get('order_number')})")
    return {"event": event, "order_id": payload.get("order_id"), "status": "sent"}
