# storefront/api/routers/payments.py
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from storefront.api.deps import get_gateway, get_notifier
from storefront.data.database import get_db
from storefront.domain.schemas import PaymentCreate, PaymentCreateOut, PaymentExecute, PaymentOut, WebhookOut
from storefront.services.notification_service import NotificationService
from storefront.services.payment_gateway import PaymentGatewayClient
from storefront.services.payment_service import PaymentService

router = APIRouter(prefix="/payments", tags=["payments"])


def get_service(
    db: Session = Depends(get_db),
    gateway: PaymentGatewayClient = Depends(get_gateway),
    notifier: NotificationService = Depends(get_notifier),
):
    return PaymentService(db, gateway=gateway, notifier=notifier)


@router.post("/", response_model=PaymentCreateOut, status_code=201)
def create_payment(payload: PaymentCreate, svc: PaymentService = Depends(get_service)):
    result = svc.create_payment(payload.order_id, payload.amount, payload.currency)
    return PaymentCreateOut(
        payment=PaymentOut.model_validate(result.payment),
        reused=result.reused,
        approval_url=result.approval_url,
        warnings=result.warnings,
    )


@router.post("/execute", response_model=PaymentOut)
def execute_payment(payload: PaymentExecute, svc: PaymentService = Depends(get_service)):
    return svc.execute_payment(payload.transaction_id, payload.order_id, payload.payer_id)


@router.post("/webhook", response_model=WebhookOut)
def webhook(event: Dict[str, Any] = Body(...), svc: PaymentService = Depends(get_service)):
    # TODO: weryfikacja podpisu webhooka, gdy bramka udostepni klucz
    return svc.handle_webhook(event)


@router.get("/{transaction_id}", response_model=PaymentOut)
def get_payment(transaction_id: str, svc: PaymentService = Depends(get_service)):
    return svc.get_payment(transaction_id)
