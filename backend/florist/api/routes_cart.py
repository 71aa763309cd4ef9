from typing import Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from florist.api.deps import get_cart_owner
from florist.config import settings
from florist.db import get_db
from florist.errors import CartNotFound
from florist.schemas.cart_schema import AddItemIn, CartOut, UpdateQuantityIn
from florist.services.cart_service import CartOwner, CartService
from florist.services.pricing import VariantSelector

router = APIRouter(prefix="/api/cart", tags=["cart"])


def _cart_body(cart) -> dict:
    if cart is None:
        return CartOut().model_dump()
    return CartOut.model_validate(cart).model_dump()


def _set_session_cookie(response: Response, token: str):
    response.set_cookie(
        settings.CART_SESSION_COOKIE,
        token,
        max_age=settings.CART_SESSION_MAX_AGE,
        httponly=True,
        samesite="lax",
    )


@router.get("", summary="Get cart")
def get_cart(owner: CartOwner = Depends(get_cart_owner), db: Session = Depends(get_db)):
    return _cart_body(CartService(db).find_for(owner))


@router.post("", summary="Add item to cart")
def add_item(
    payload: AddItemIn,
    response: Response,
    owner: CartOwner = Depends(get_cart_owner),
    db: Session = Depends(get_db),
):
    if not owner:
        # first add by an anonymous visitor starts a guest session
        owner = CartOwner(session_id=uuid4().hex)
        _set_session_cookie(response, owner.session_id)
    svc = CartService(db)
    cart = svc.find_or_create(owner)
    cart = svc.add_item(
        cart,
        payload.product_id,
        quantity=payload.quantity,
        selector=payload.selector(),
        explicit_price_cents=payload.custom_price_cents,
    )
    return _cart_body(cart)


@router.put("/{product_id}", summary="Update item quantity")
def update_quantity(
    product_id: int,
    payload: UpdateQuantityIn,
    owner: CartOwner = Depends(get_cart_owner),
    db: Session = Depends(get_db),
):
    svc = CartService(db)
    cart = svc.find_for(owner)
    if cart is None:
        raise CartNotFound("Cart not found")
    cart = svc.update_quantity(
        cart, product_id, payload.quantity, variant_id=payload.variant_id, selector=payload.selector()
    )
    return _cart_body(cart)


@router.delete("/{product_id}", summary="Remove item")
def remove_item(
    product_id: int,
    variant_id: Optional[str] = Query(None),
    variant_name: Optional[str] = Query(None),
    variant_index: Optional[int] = Query(None, ge=0),
    owner: CartOwner = Depends(get_cart_owner),
    db: Session = Depends(get_db),
):
    svc = CartService(db)
    cart = svc.find_for(owner)
    if cart is None:
        return _cart_body(None)
    selector = VariantSelector(variant_name=variant_name, variant_index=variant_index)
    return _cart_body(svc.remove_item(cart, product_id, variant_id, selector=selector))


@router.post("/clear", summary="Clear cart")
def clear_cart(
    response: Response,
    owner: CartOwner = Depends(get_cart_owner),
    db: Session = Depends(get_db),
):
    svc = CartService(db)
    cart = svc.find_for(owner)
    if cart is not None:
        svc.clear_items(cart)
    if owner.session_id and not owner.user_id:
        response.delete_cookie(settings.CART_SESSION_COOKIE)
    return _cart_body(cart)
