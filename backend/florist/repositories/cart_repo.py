from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from florist.models.cart import Cart
from florist.models.cart_item import CartItem, line_key


class CartRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_user(self, user_id: str) -> Optional[Cart]:
        return self.db.query(Cart).filter(Cart.user_id == user_id).first()

    def get_by_session(self, session_id: str) -> Optional[Cart]:
        return self.db.query(Cart).filter(Cart.session_id == session_id).first()

    def create(self, user_id: Optional[str] = None, session_id: Optional[str] = None) -> Cart:
        # a cart belongs to exactly one identity; a user id wins over a guest token
        c = Cart(user_id=user_id) if user_id else Cart(session_id=session_id)
        self.db.add(c)
        self.db.flush()
        return c

    def find_line(self, cart: Cart, product_id: int, variant_id: Optional[str] = None) -> Optional[CartItem]:
        target = line_key(product_id, variant_id)
        return next((it for it in cart.items if it.key == target), None)

    def add_line(self, cart: Cart, **fields) -> CartItem:
        item = CartItem(**fields)
        cart.items.append(item)
        self.db.flush()
        return item

    def remove_line(self, cart: Cart, item: CartItem):
        cart.items.remove(item)
        self.db.flush()

    def clear(self, cart: Cart):
        cart.items.clear()
        self.db.flush()

    def delete_expired(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        expired = self.db.query(Cart).filter(Cart.expires_at < now).all()
        for c in expired:
            self.db.delete(c)
        self.db.flush()
        return len(expired)
