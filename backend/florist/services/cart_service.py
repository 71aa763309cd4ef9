from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from florist.config import settings
from florist.errors import (
    InvalidQuantity,
    ItemNotFound,
    ProductInactive,
    ProductNotFound,
    QuantityLimitExceeded,
    ValidationError,
)
from florist.models.cart import Cart
from florist.repositories.cart_repo import CartRepository
from florist.repositories.product_repo import ProductRepository
from florist.services.pricing import VariantSelector, find_variant, resolve_price
from florist.utils.logging import get_logger

log = get_logger("cart")


@dataclass(frozen=True)
class CartOwner:
    """Identity a cart is stored under. How the token reached us (cookie, header) is the caller's concern."""

    user_id: Optional[str] = None
    session_id: Optional[str] = None

    def __bool__(self):
        return bool(self.user_id or self.session_id)


class CartService:
    def __init__(self, db: Session):
        self.db = db
        self.cart_repo = CartRepository(db)
        self.product_repo = ProductRepository(db)
        self.max_quantity = settings.CART_MAX_QUANTITY

    # --- lookups ---

    def find_by_user(self, user_id: str) -> Optional[Cart]:
        return self.cart_repo.get_by_user(user_id)

    def find_by_session(self, session_id: str) -> Optional[Cart]:
        return self.cart_repo.get_by_session(session_id)

    def find_for(self, owner: CartOwner) -> Optional[Cart]:
        # an authenticated request never looks at the guest cart (no merge on login)
        if owner.user_id:
            return self.find_by_user(owner.user_id)
        if owner.session_id:
            return self.find_by_session(owner.session_id)
        return None

    def find_or_create(self, owner: CartOwner) -> Cart:
        if not owner:
            raise ValidationError("A user id or a cart session token is required")
        cart = self.find_for(owner)
        if cart is None:
            cart = self.cart_repo.create(user_id=owner.user_id, session_id=owner.session_id)
            log.debug("created cart id=%s for user=%s session=%s", cart.id, owner.user_id, owner.session_id)
        return cart

    # --- mutations ---

    def _check_quantity(self, quantity: int):
        if quantity is None or quantity < 1:
            raise InvalidQuantity(f"Quantity must be between 1 and {self.max_quantity}")
        if quantity > self.max_quantity:
            raise QuantityLimitExceeded(
                f"Quantity must be between 1 and {self.max_quantity}",
                details={"max_quantity": self.max_quantity},
            )

    def add_item(
        self,
        cart: Cart,
        product_id: int,
        quantity: int = 1,
        selector: Optional[VariantSelector] = None,
        explicit_price_cents: Optional[int] = None,
    ) -> Cart:
        self._check_quantity(quantity)

        product = self.product_repo.get(product_id)
        if not product:
            raise ProductNotFound("Product not found")
        if not product.is_active:
            raise ProductInactive("This product is no longer available")

        resolved = resolve_price(product.pricing, selector, explicit_price_cents)

        item = self.cart_repo.find_line(cart, product.id, resolved.variant_id)
        if item:
            new_quantity = item.quantity + quantity
            if new_quantity > self.max_quantity:
                raise QuantityLimitExceeded(
                    f"Quantity must be between 1 and {self.max_quantity} "
                    f"(already {item.quantity} in cart)",
                    details={"max_quantity": self.max_quantity, "in_cart": item.quantity},
                )
            item.quantity = new_quantity
            item.unit_price_cents = resolved.unit_price_cents
            item.added_at = datetime.now(timezone.utc)
            if resolved.variant_name:
                item.variant_name = resolved.variant_name
        else:
            self.cart_repo.add_line(
                cart,
                product_id=product.id,
                variant_id=resolved.variant_id,
                variant_name=resolved.variant_name,
                name=product.name,
                image=product.image,
                quantity=quantity,
                unit_price_cents=resolved.unit_price_cents,
            )

        cart.recalculate_totals()
        self.db.commit()
        return cart

    def _canonical_variant_id(
        self, product_id: int, variant_id: Optional[str], selector: Optional[VariantSelector]
    ) -> Optional[str]:
        """Map a stale id, a name or an index onto the persisted variant id used in line keys."""
        if variant_id is None and (selector is None or selector.is_empty()):
            return None
        product = self.product_repo.get(product_id)
        if product is None or not product.has_variants:
            return variant_id
        lookup = VariantSelector(
            variant_id=variant_id,
            variant_name=selector.variant_name if selector else None,
            variant_index=selector.variant_index if selector else None,
        )
        match = find_variant(product.pricing.variants, lookup)
        return match.id if match else variant_id

    def update_quantity(
        self,
        cart: Cart,
        product_id: int,
        quantity: int,
        variant_id: Optional[str] = None,
        selector: Optional[VariantSelector] = None,
    ) -> Cart:
        # removal is explicit (remove_item); zero is rejected rather than treated as delete
        self._check_quantity(quantity)
        variant_id = self._canonical_variant_id(product_id, variant_id, selector)

        item = self.cart_repo.find_line(cart, product_id, variant_id)
        if not item:
            raise ItemNotFound("Item not found in cart")
        item.quantity = quantity
        item.added_at = datetime.now(timezone.utc)

        cart.recalculate_totals()
        self.db.commit()
        return cart

    def remove_item(
        self,
        cart: Cart,
        product_id: int,
        variant_id: Optional[str] = None,
        selector: Optional[VariantSelector] = None,
    ) -> Cart:
        variant_id = self._canonical_variant_id(product_id, variant_id, selector)
        item = self.cart_repo.find_line(cart, product_id, variant_id)
        if item is None:
            log.debug("remove_item: no line %s/%s in cart %s, nothing to do", product_id, variant_id, cart.id)
            return cart
        self.cart_repo.remove_line(cart, item)
        cart.recalculate_totals()
        self.db.commit()
        return cart

    def clear_items(self, cart: Cart) -> Cart:
        self.cart_repo.clear(cart)
        cart.recalculate_totals()
        self.db.commit()
        return cart

    def clear_for(self, owner: CartOwner) -> bool:
        """Empty the owner's cart if there is one. Returns whether a cart was found."""
        cart = self.find_for(owner)
        if cart is None:
            return False
        self.clear_items(cart)
        return True

    def clean_expired_carts(self) -> int:
        removed = self.cart_repo.delete_expired()
        self.db.commit()
        if removed:
            log.info("removed %d expired carts", removed)
        return removed
