from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from florist.adapters.registry import get_notifier
from florist.api.routes_order import invoice_response
from florist.db import get_db
from florist.errors import ProductNotFound
from florist.repositories.product_repo import ProductRepository
from florist.schemas.order_schema import OrderOut, StatusUpdateIn
from florist.schemas.product_schema import PricingUpdateIn, ProductCreateIn, ProductOut
from florist.services.invoice_service import InvoiceService
from florist.services.order_service import OrderService
from florist.services.order_status import allowed_next, status_label

# authorization for these routes is enforced upstream
router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.post("/products", status_code=201, summary="Create product")
def create_product(payload: ProductCreateIn, db: Session = Depends(get_db)):
    repo = ProductRepository(db)
    p = repo.create(
        name=payload.name,
        pricing=payload.pricing.to_pricing(),
        description=payload.description,
        category=payload.category,
        image=payload.image,
        is_active=payload.is_active,
    )
    db.commit()
    return ProductOut.from_product(repo.get(p.id)).model_dump()


@router.put("/products/{product_id}/pricing", summary="Replace product pricing")
def update_pricing(product_id: int, payload: PricingUpdateIn, db: Session = Depends(get_db)):
    repo = ProductRepository(db)
    p = repo.get(product_id)
    if not p:
        raise ProductNotFound("Product not found")
    repo.set_pricing(p, payload.pricing.to_pricing())
    db.commit()
    db.expire_all()
    return ProductOut.from_product(repo.get(product_id)).model_dump()


def _order_detail(order) -> dict:
    body = OrderOut.model_validate(order).model_dump(mode="json")
    body["status_label"] = status_label(order.status)
    body["allowed_next_statuses"] = allowed_next(order.status)
    return body


@router.get("/orders/{order_id}", summary="Order detail with timeline")
def get_order(order_id: int, db: Session = Depends(get_db)):
    return _order_detail(OrderService(db).get(order_id))


@router.patch("/orders/{order_id}/status", summary="Change order status")
def update_order_status(
    order_id: int,
    payload: StatusUpdateIn,
    db: Session = Depends(get_db),
    notifier=Depends(get_notifier),
):
    order = OrderService(db, notifier).update_status(order_id, payload.status, payload.note)
    return {"success": True, "order": _order_detail(order)}


@router.get("/orders/{order_id}/invoice", summary="Invoice of a delivered order")
def get_order_invoice(
    order_id: int,
    fmt: str = Query("html", alias="format", pattern="^(html|json)$"),
    db: Session = Depends(get_db),
):
    return invoice_response(InvoiceService(db).for_admin(order_id), fmt)
