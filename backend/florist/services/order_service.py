from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from florist.config import settings
from florist.errors import (
    ConflictError,
    OrderAccessDenied,
    OrderAlreadyExists,
    OrderNotFound,
    PriceMismatch,
    ProductInactive,
    ProductNotFound,
    StaleStatusTransition,
    ValidationError,
)
from florist.models.order import PAYMENT_PENDING, Order, OrderLine, OrderTimelineEntry
from florist.repositories.order_repo import OrderRepository
from florist.repositories.product_repo import ProductRepository
from florist.schemas.order_schema import CheckoutIn, OrderItemIn
from florist.services.cart_service import CartOwner, CartService
from florist.services.notifications import send_best_effort
from florist.services.order_status import (
    PAYEE,
    check_transition,
    default_note,
    lifecycle_column,
    should_notify,
    validate_note,
    validate_status,
)
from florist.services.pricing import VariantSelector, format_price, resolve_price
from florist.utils.logging import get_logger

log = get_logger("order")

MAX_DAILY_SEQUENCE = 9999


def lines_from_items(items: List[OrderItemIn]) -> List[OrderLine]:
    return [
        OrderLine(
            product_id=it.product_id,
            variant_id=it.variant_id,
            variant_name=it.variant_name,
            name=it.name,
            image=it.image,
            quantity=it.quantity,
            unit_price_cents=it.unit_price_cents,
        )
        for it in items
    ]


def lines_from_cart(cart) -> List[OrderLine]:
    # copies, not references: later catalogue or cart edits never touch a placed order
    return [
        OrderLine(
            product_id=it.product_id,
            variant_id=it.variant_id,
            variant_name=it.variant_name,
            name=it.name,
            image=it.image,
            quantity=it.quantity,
            unit_price_cents=it.unit_price_cents,
        )
        for it in cart.items
    ]


def lines_total(lines: List[OrderLine]) -> int:
    return sum(l.unit_price_cents * l.quantity for l in lines)


class OrderService:
    def __init__(self, db: Session, notifier=None):
        self.db = db
        self.repo = OrderRepository(db)
        self.carts = CartService(db)
        self.products = ProductRepository(db)
        self.notifier = notifier

    # --- order numbers ---

    def next_order_number(self, now: Optional[datetime] = None) -> str:
        """BF-YYYYMMDD-NNNN, one past the highest number already issued today."""
        now = now or datetime.now(timezone.utc)
        prefix = f"{settings.ORDER_NUMBER_PREFIX}-{now:%Y%m%d}"
        latest = self.repo.latest_number_with_prefix(prefix)
        seq = int(latest.rsplit("-", 1)[1]) + 1 if latest else 1
        if seq > MAX_DAILY_SEQUENCE:
            raise ConflictError("Daily order number capacity reached")
        return f"{prefix}-{seq:04d}"

    def insert_with_retry(self, build: Callable[[str], Order]) -> Order:
        """
        Insert the order built by `build(order_number)` and commit.

        A unique violation is either a taken order number (retry with the next
        one) or a taken payment reference, in which case the order that won is
        handed back through OrderAlreadyExists.
        """
        attempts = settings.ORDER_NUMBER_MAX_ATTEMPTS
        for attempt in range(1, attempts + 1):
            order = build(self.next_order_number())
            try:
                self.repo.add(order)
                self.db.commit()
                return order
            except IntegrityError:
                self.db.rollback()
                ref = order.stripe_payment_intent_id
                if ref:
                    existing = self.repo.get_by_payment_intent(ref, fresh=True)
                    if existing is not None:
                        raise OrderAlreadyExists(
                            f"An order already exists for payment {ref}",
                            order=existing,
                            details={"order_id": existing.id, "order_number": existing.order_number},
                        )
                log.warning("order number %s taken, retrying (%d/%d)", order.order_number, attempt, attempts)
        raise ConflictError("Could not allocate a unique order number, please retry")

    # --- checkout ---

    def price_items(self, items: List[OrderItemIn]) -> List[OrderItemIn]:
        """
        Re-resolve submitted lines against the current catalogue. A unit price
        that differs from the resolved one is rejected; names, images and
        variant ids are taken from the catalogue.
        """
        priced = []
        for it in items:
            product = self.products.get(it.product_id)
            if product is None:
                raise ProductNotFound("Product not found", details={"product_id": it.product_id})
            if not product.is_active:
                raise ProductInactive(f'"{product.name}" is no longer available', details={"product_id": product.id})
            selector = VariantSelector(variant_id=it.variant_id, variant_name=it.variant_name)
            resolved = resolve_price(product.pricing, selector, it.unit_price_cents)
            if resolved.unit_price_cents != it.unit_price_cents:
                log.warning(
                    "rejected line for product %s: submitted %d cents, catalogue %d",
                    product.id, it.unit_price_cents, resolved.unit_price_cents,
                )
                raise PriceMismatch(
                    f'Price of "{product.name}" is now {format_price(resolved.unit_price_cents)}, please refresh your cart',
                    details={
                        "product_id": product.id,
                        "submitted_cents": it.unit_price_cents,
                        "current_cents": resolved.unit_price_cents,
                    },
                )
            priced.append(
                it.model_copy(
                    update={
                        "name": product.name,
                        "image": product.image,
                        "variant_id": resolved.variant_id,
                        "variant_name": resolved.variant_name,
                    }
                )
            )
        return priced

    def create_order(self, checkout: CheckoutIn, owner: CartOwner) -> Tuple[Order, bool]:
        """
        Create a pending-payment order from the submitted items, or from the
        caller's cart when none are submitted. Returns (order, created); a
        payment reference that already has an order returns that order.
        """
        ref = checkout.stripe_payment_intent_id
        if ref:
            existing = self.repo.get_by_payment_intent(ref)
            if existing is not None:
                log.info("checkout for %s returns existing order %s", ref, existing.order_number)
                return existing, False

        if checkout.items:
            source, to_lines = self.price_items(checkout.items), lines_from_items
        else:
            cart = self.carts.find_for(owner) if owner else None
            if cart is None or cart.is_empty:
                raise ValidationError("Cart is empty")
            source, to_lines = cart, lines_from_cart

        def build(order_number: str) -> Order:
            lines = to_lines(source)
            return Order(
                order_number=order_number,
                user_id=owner.user_id,
                cart_session_id=None if owner.user_id else owner.session_id,
                status=PAYEE,
                payment_status=PAYMENT_PENDING,
                payment_method=checkout.payment_method,
                stripe_payment_intent_id=ref,
                total_amount_cents=lines_total(lines),
                customer_info=checkout.customer_info.model_dump(mode="json"),
                delivery_info=checkout.delivery_info.model_dump(mode="json"),
                is_gift=checkout.is_gift,
                gift_info=checkout.gift_info.model_dump(mode="json") if checkout.gift_info else None,
                lines=lines,
                timeline=[OrderTimelineEntry(status=PAYEE, note="Order created")],
            )

        try:
            order = self.insert_with_retry(build)
        except OrderAlreadyExists as e:
            return e.order, False
        log.info("created order %s (%d lines, %d cents)", order.order_number, len(order.lines), order.total_amount_cents)
        return order, True

    # --- reads ---

    def get(self, order_id: int) -> Order:
        order = self.repo.get(order_id)
        if order is None:
            raise OrderNotFound("Order not found")
        return order

    def get_by_payment_intent(self, payment_intent_id: str) -> Order:
        order = self.repo.get_by_payment_intent(payment_intent_id)
        if order is None:
            raise OrderNotFound("Order not found")
        return order

    def check_owner(self, order: Order, user_id: Optional[str]):
        """A signed-in caller may only see their own orders; guest lookups go by payment reference alone."""
        if user_id and order.user_id and order.user_id != user_id:
            log.warning("user %s denied access to order %s", user_id, order.order_number)
            raise OrderAccessDenied("Access to this order is not allowed")

    def list_for_user(self, user_id: str, status: Optional[str] = None, page: int = 1, limit: int = 10):
        return self.repo.list_for_user(user_id, status=status, page=page, limit=limit)

    # --- status workflow ---

    def update_status(self, order_id: int, new_status: str, note: Optional[str] = None) -> Order:
        validate_status(new_status)
        note = validate_note(note)

        order = self.repo.get(order_id, fresh=True)
        if order is None:
            raise OrderNotFound("Order not found")
        previous = order.status
        changed = check_transition(previous, new_status)
        now = datetime.now(timezone.utc)

        if changed:
            extra = {}
            column = lifecycle_column(new_status)
            if column:
                extra[column] = func.coalesce(getattr(Order, column), now)
            if not self.repo.compare_and_set_status(order.id, previous, new_status, extra):
                self.db.rollback()
                log.warning("order %s: status moved away from %s before %s could apply", order.order_number, previous, new_status)
                raise StaleStatusTransition(
                    f'Order status is no longer "{previous}", reload and retry',
                    details={"expected": previous, "attempted": new_status},
                )
        if note:
            order.admin_notes = note
        self.repo.append_timeline(order.id, new_status, note or default_note(new_status), now)
        self.db.commit()

        order = self.repo.get(order.id, fresh=True)
        log.info("order %s: %s -> %s", order.order_number, previous, new_status)

        if self.notifier is not None and should_notify(previous, new_status):
            send_best_effort(
                f"status email for {order.order_number}",
                self.notifier.send_order_status_email,
                order,
                new_status,
                note,
                previous_status=previous,
            )
        return order
