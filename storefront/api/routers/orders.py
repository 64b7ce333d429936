# storefront/api/routers/orders.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.api.deps import get_notifier
from storefront.data.database import get_db
from storefront.domain.schemas import (
    OrderCreate,
    OrderListOut,
    OrderNoteIn,
    OrderNoteOut,
    OrderOut,
    OrderStatusUpdate,
)
from storefront.services.notification_service import NotificationService
from storefront.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


def get_service(db: Session = Depends(get_db), notifier: NotificationService = Depends(get_notifier)):
    return OrderService(db, notifier=notifier)


@router.post("/", response_model=OrderOut, status_code=201)
def create_order(payload: OrderCreate, svc: OrderService = Depends(get_service)):
    """
    Tworzy zamowienie z aktywnego koszyka.
    Wysyla powiadomienie asynchronicznie po commicie.
    """
    return svc.create_order(
        session_id=payload.session_id,
        user_id=payload.user_id,
        billing_address=payload.billing_address.model_dump(),
        shipping_address=payload.shipping_address.model_dump(),
        shipping_method=payload.shipping_method,
        customer_email=payload.customer_email,
        notes=payload.notes,
    )


@router.get("/", response_model=OrderListOut)
def list_orders(
    user_id: int = Query(..., gt=0),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    svc: OrderService = Depends(get_service),
):
    return svc.list_orders(user_id, page, limit)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: int,
    user_id: int | None = Query(None),
    svc: OrderService = Depends(get_service),
):
    return svc.get_order(order_id, user_id)


@router.patch("/{order_id}/status", response_model=OrderOut)
def update_status(order_id: int, payload: OrderStatusUpdate, svc: OrderService = Depends(get_service)):
    return svc.update_status(
        order_id,
        payload.status,
        tracking_number=payload.tracking_number,
        carrier=payload.carrier,
        note=payload.note,
        author=payload.author,
    )


@router.post("/{order_id}/cancel", response_model=OrderOut)
def cancel_order(order_id: int, svc: OrderService = Depends(get_service)):
    return svc.cancel_order(order_id)


@router.post("/{order_id}/notes", response_model=OrderNoteOut, status_code=201)
def add_note(order_id: int, payload: OrderNoteIn, svc: OrderService = Depends(get_service)):
    return svc.add_note(order_id, payload.body, payload.author)
