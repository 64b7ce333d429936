# storefront/api/routers/refunds.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.api.deps import get_gateway, get_notifier
from storefront.data.database import get_db
from storefront.domain.schemas import (
    RefundCompleteIn,
    RefundCreate,
    RefundFailIn,
    RefundHistoryOut,
    RefundOut,
    RefundStatisticsOut,
)
from storefront.services.notification_service import NotificationService
from storefront.services.payment_gateway import PaymentGatewayClient
from storefront.services.refund_service import RefundItemRequest, RefundRequest, RefundService

router = APIRouter(prefix="/refunds", tags=["refunds"])


def get_service(
    db: Session = Depends(get_db),
    gateway: PaymentGatewayClient = Depends(get_gateway),
    notifier: NotificationService = Depends(get_notifier),
):
    return RefundService(db, gateway=gateway, notifier=notifier)


@router.post("/", response_model=RefundOut, status_code=201)
def create_refund(payload: RefundCreate, svc: RefundService = Depends(get_service)):
    request = RefundRequest(
        order_id=payload.order_id,
        refund_type=payload.refund_type.value,
        reason=payload.reason,
        reason_code=payload.reason_code.value,
        amount=payload.amount,
        items=[RefundItemRequest(i.order_item_id, i.quantity, i.reason) for i in payload.items],
        initiated_by=payload.initiated_by,
        notify_customer=payload.notify_customer,
    )
    return svc.process_refund(request)


# statystyki przed /{refund_id}, inaczej "statistics" trafi jako id
@router.get("/statistics", response_model=RefundStatisticsOut)
def refund_statistics(timeframe: str = Query("30d"), svc: RefundService = Depends(get_service)):
    return svc.get_refund_statistics(timeframe)


@router.get("/orders/{order_id}", response_model=RefundHistoryOut)
def refund_history(order_id: int, svc: RefundService = Depends(get_service)):
    return svc.get_refund_history(order_id)


@router.get("/{refund_id}", response_model=RefundOut)
def get_refund(refund_id: int, svc: RefundService = Depends(get_service)):
    return svc.get_refund(refund_id)


@router.post("/{refund_id}/complete", response_model=RefundOut)
def complete_refund(refund_id: int, payload: RefundCompleteIn, svc: RefundService = Depends(get_service)):
    return svc.complete_refund(refund_id, payload.refund_transaction_id)


@router.post("/{refund_id}/fail", response_model=RefundOut)
def fail_refund(refund_id: int, payload: RefundFailIn, svc: RefundService = Depends(get_service)):
    return svc.fail_refund(refund_id, payload.reason)
