from typing import Optional

from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session

from florist.adapters.registry import get_notifier, get_payment_gateway
from florist.api.deps import get_user_id, raw_body
from florist.db import get_db
from florist.schemas.order_schema import ConfirmPaymentIn, OrderOut
from florist.services.payment_service import PaymentConfirmationCoordinator

router = APIRouter(prefix="/api", tags=["payments"])


@router.post("/payments/confirm-payment", summary="Confirm a payment from the client")
def confirm_payment(
    payload: ConfirmPaymentIn,
    user_id: Optional[str] = Depends(get_user_id),
    db: Session = Depends(get_db),
    gateway=Depends(get_payment_gateway),
    notifier=Depends(get_notifier),
):
    coordinator = PaymentConfirmationCoordinator(db, gateway, notifier)
    order, changed = coordinator.confirm_payment(payload.payment_intent_id, payload.order_id, user_id)
    return {
        "success": True,
        "already_paid": not changed,
        "order": OrderOut.model_validate(order).model_dump(mode="json"),
    }


@router.post("/webhooks/stripe", summary="Payment gateway webhook")
def stripe_webhook(
    payload: bytes = Depends(raw_body),
    stripe_signature: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    gateway=Depends(get_payment_gateway),
    notifier=Depends(get_notifier),
):
    coordinator = PaymentConfirmationCoordinator(db, gateway, notifier)
    return coordinator.handle_webhook(payload, stripe_signature)
