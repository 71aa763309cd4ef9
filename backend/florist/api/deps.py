from typing import Optional

from fastapi import Header, Request

from florist.config import settings
from florist.services.cart_service import CartOwner


def get_user_id(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    # set by the upstream auth layer; absent for guests
    return x_user_id or None


def get_cart_owner(request: Request, x_user_id: Optional[str] = Header(None)) -> CartOwner:
    return CartOwner(
        user_id=x_user_id or None,
        session_id=request.cookies.get(settings.CART_SESSION_COOKIE) or None,
    )


async def raw_body(request: Request) -> bytes:
    # webhook signatures are computed over the exact bytes received
    return await request.body()
