from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session

from florist.adapters.registry import get_notifier, get_payment_gateway
from florist.api.deps import get_cart_owner, get_user_id
from florist.db import get_db
from florist.errors import AuthenticationRequired, ValidationError
from florist.schemas.order_schema import CheckoutIn, FallbackOrderIn, InvoiceOut, OrderOut
from florist.services.cart_service import CartOwner
from florist.services.invoice_service import InvoiceService, render_invoice_html
from florist.services.order_service import OrderService
from florist.services.payment_service import PaymentConfirmationCoordinator

router = APIRouter(tags=["orders"])


def _order_body(order) -> dict:
    return OrderOut.model_validate(order).model_dump(mode="json")


@router.post("", summary="Create order (checkout)")
def create_order(
    payload: CheckoutIn,
    response: Response,
    owner: CartOwner = Depends(get_cart_owner),
    db: Session = Depends(get_db),
):
    order, created = OrderService(db).create_order(payload, owner)
    response.status_code = 201 if created else 200
    return {"success": True, "created": created, "order": _order_body(order)}


@router.get("", summary="List the caller's orders")
def list_orders(
    status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user_id: Optional[str] = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    if not user_id:
        raise ValidationError("Authentication required to list orders")
    items, total = OrderService(db).list_for_user(user_id, status=status, page=page, limit=limit)
    return {
        "items": [_order_body(o) for o in items],
        "total": total,
        "page": page,
        "pages": (total + limit - 1) // limit,
    }


@router.get("/by-payment-intent/{payment_intent_id}", summary="Find order by payment reference")
def get_by_payment_intent(
    payment_intent_id: str,
    user_id: Optional[str] = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    svc = OrderService(db)
    order = svc.get_by_payment_intent(payment_intent_id)
    svc.check_owner(order, user_id)
    return _order_body(order)


@router.post("/by-payment-intent/{payment_intent_id}", summary="Create order after payment (fallback)")
def create_fallback_order(
    payment_intent_id: str,
    payload: FallbackOrderIn,
    response: Response,
    owner: CartOwner = Depends(get_cart_owner),
    db: Session = Depends(get_db),
    gateway=Depends(get_payment_gateway),
    notifier=Depends(get_notifier),
):
    coordinator = PaymentConfirmationCoordinator(db, gateway, notifier)
    order, created = coordinator.create_fallback_order(payment_intent_id, payload.order_data, owner)
    response.status_code = 201 if created else 200
    return {"success": True, "already_existed": not created, "order": _order_body(order)}


def invoice_response(invoice, fmt: str):
    if fmt == "json":
        return InvoiceOut.model_validate(invoice).model_dump(mode="json")
    return HTMLResponse(
        render_invoice_html(invoice),
        headers={"Content-Disposition": f'inline; filename="facture-{invoice.invoice_no}.html"'},
    )


@router.get("/{order_id}/invoice", summary="Invoice of a delivered order")
def get_invoice(
    order_id: int,
    fmt: str = Query("html", alias="format", pattern="^(html|json)$"),
    user_id: Optional[str] = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    if not user_id:
        raise AuthenticationRequired("Sign in to download your invoice")
    return invoice_response(InvoiceService(db).for_customer(order_id, user_id), fmt)
