"""
Payment confirmation: one idempotent "mark paid and notify" step shared by
the gateway webhook, the client confirmation call and the fallback order
creation used when the client gets back before the webhook does.

No locks are taken. Two database guarantees make duplicates harmless:

* `orders.stripe_payment_intent_id` is unique, so at most one order exists
  per payment reference and a losing insert re-reads the winner;
* the paid flag flips through a conditional UPDATE, so exactly one caller
  per order sees a changed row and only that caller sends the emails and
  clears the cart.
"""
from datetime import datetime, timezone
from typing import Optional, Tuple

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from florist.adapters.payment import (
    CANCELED,
    EVENT_PAYMENT_FAILED,
    EVENT_PAYMENT_SUCCEEDED,
    PROCESSING,
    REQUIRES_ACTION,
    SUCCEEDED,
    PaymentIntentInfo,
)
from florist.errors import (
    IncompleteOrderData,
    OrderAlreadyExists,
    OrderNotFound,
    PaymentCanceled,
    PaymentAmountMismatch,
    PaymentFailed,
    PaymentIntentMismatch,
    PaymentProcessing,
    PaymentRequiresAction,
)
from florist.models.order import PAYMENT_FAILED, PAYMENT_PAID, Order, OrderTimelineEntry
from florist.schemas.order_schema import OrderDraft
from florist.services.cart_service import CartOwner, CartService
from florist.services.notifications import send_best_effort
from florist.services.order_service import OrderService, lines_from_items, lines_total
from florist.services.order_status import MAX_NOTE_LENGTH, PAYEE
from florist.utils.logging import get_logger

log = get_logger("payment")

REQUIRED_ORDER_FIELDS = ("customer_info", "delivery_info", "items", "total_amount_cents")

NOTE_WEBHOOK = "Payment confirmed by Stripe webhook"
NOTE_CLIENT = "Payment confirmed by client"
NOTE_FALLBACK = "Payment confirmed by Stripe"


class PaymentConfirmationCoordinator:
    def __init__(self, db: Session, gateway, notifier):
        self.db = db
        self.gateway = gateway
        self.notifier = notifier
        self.orders = OrderService(db, notifier)
        self.repo = self.orders.repo
        self.carts = CartService(db)

    # --- shared protocol ---

    def _mark_paid(self, order: Order, note: str) -> Tuple[Order, bool]:
        """Flip the order to paid. Returns (order, True) only for the caller that did it."""
        now = datetime.now(timezone.utc)
        won = self.repo.mark_paid_if_unpaid(
            order.id, {"confirmed_at": func.coalesce(Order.confirmed_at, now)}
        )
        if not won:
            self.db.rollback()
            log.info("order %s already paid, skipping notifications", order.order_number)
            return self.repo.get(order.id, fresh=True), False

        if order.status != PAYEE:
            log.warning("order %s paid while in status %s", order.order_number, order.status)
        self.repo.append_timeline(order.id, order.status, note, now)
        self.db.commit()
        order = self.repo.get(order.id, fresh=True)
        log.info("order %s marked paid (%s)", order.order_number, note)
        self._after_payment(order)
        return order, True

    def _after_payment(self, order: Order):
        send_best_effort(
            f"confirmation email for {order.order_number}", self.notifier.send_order_confirmation, order
        )
        send_best_effort(
            f"admin notification for {order.order_number}", self.notifier.send_new_order_notification, order
        )
        owner = CartOwner(user_id=order.user_id, session_id=order.cart_session_id)
        if not owner:
            return
        try:
            self.carts.clear_for(owner)
        except SQLAlchemyError as e:
            self.db.rollback()
            log.error("clearing cart after order %s failed: %s", order.order_number, e)

    def _record_failure(self, order: Order, intent: PaymentIntentInfo):
        """Mark the payment failed (unless paid meanwhile) and log it on the timeline; status is untouched."""
        if not self.repo.set_payment_status_unless_paid(order.id, PAYMENT_FAILED):
            self.db.rollback()
            return
        note = f"Payment {intent.status}"
        if intent.last_error:
            note += f": {intent.last_error}"
        self.repo.append_timeline(order.id, order.status, note[:MAX_NOTE_LENGTH])
        self.db.commit()
        log.warning("order %s: payment %s recorded as failed", order.order_number, intent.id)

    def _require_success(self, intent: PaymentIntentInfo, order: Optional[Order] = None):
        details = {"payment_intent_id": intent.id, "status": intent.status}
        if intent.status == SUCCEEDED:
            return
        if intent.status == REQUIRES_ACTION:
            raise PaymentRequiresAction("Payment requires additional authentication", details=details)
        if intent.status == PROCESSING:
            raise PaymentProcessing("Payment is still processing", details=details)
        if order is not None:
            self._record_failure(order, intent)
        if intent.status == CANCELED:
            raise PaymentCanceled("Payment was canceled", details=details)
        raise PaymentFailed(f"Payment failed ({intent.status})", details=details)

    def _attach_reference(self, order: Order, ref: str) -> Order:
        if order.stripe_payment_intent_id == ref:
            return order
        order.stripe_payment_intent_id = ref
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise PaymentIntentMismatch(
                "Payment is already attached to another order", details={"payment_intent_id": ref}
            )
        return order

    # --- webhook ---

    def handle_webhook(self, payload: bytes, signature: Optional[str]) -> dict:
        event = self.gateway.construct_event(payload, signature)
        event_type = event.get("type")
        intent = (event.get("data") or {}).get("object") or {}
        ref = intent.get("id")

        if event_type == EVENT_PAYMENT_SUCCEEDED:
            order = self._order_for_event(intent)
            if order is None:
                log.info("webhook: no order yet for %s, the fallback path will create it", ref)
                return {"received": True, "handled": False}
            if order.stripe_payment_intent_id is None:
                order = self._attach_reference(order, ref)
            order, changed = self._mark_paid(order, NOTE_WEBHOOK)
            return {"received": True, "handled": True, "order_id": order.id, "already_paid": not changed}

        if event_type == EVENT_PAYMENT_FAILED:
            order = self._order_for_event(intent)
            if order is not None and order.payment_status != PAYMENT_PAID:
                error = intent.get("last_payment_error") or {}
                self._record_failure(
                    order,
                    PaymentIntentInfo(
                        id=ref,
                        status=intent.get("status") or "failed",
                        amount=intent.get("amount") or 0,
                        last_error=error.get("message"),
                    ),
                )
                return {"received": True, "handled": True, "order_id": order.id}
            return {"received": True, "handled": False}

        log.debug("webhook: ignoring event type %s", event_type)
        return {"received": True, "handled": False}

    def _order_for_event(self, intent: dict) -> Optional[Order]:
        ref = intent.get("id")
        metadata = intent.get("metadata") or {}
        raw_order_id = metadata.get("order_id")
        if raw_order_id and raw_order_id != "guest":
            try:
                order = self.repo.get(int(raw_order_id), fresh=True)
            except ValueError:
                log.warning("webhook: unusable order_id metadata %r on %s", raw_order_id, ref)
                order = None
            if order is not None and order.stripe_payment_intent_id not in (None, ref):
                log.warning(
                    "webhook: order %s carries payment %s, event is for %s",
                    order.id, order.stripe_payment_intent_id, ref,
                )
                order = None
            if order is not None:
                return order
        if not ref:
            return None
        return self.repo.get_by_payment_intent(ref, fresh=True)

    # --- client confirmation ---

    def confirm_payment(self, payment_intent_id: str, order_id: int, user_id: Optional[str] = None) -> Tuple[Order, bool]:
        order = self.repo.get(order_id, fresh=True)
        if order is None:
            raise OrderNotFound("Order not found")
        if order.user_id and order.user_id != user_id:
            raise PaymentIntentMismatch("Order does not belong to the current user")
        if order.stripe_payment_intent_id and order.stripe_payment_intent_id != payment_intent_id:
            raise PaymentIntentMismatch(
                "Payment does not match this order", details={"order_id": order.id}
            )
        if order.payment_status == PAYMENT_PAID:
            log.info("confirm: order %s already paid", order.order_number)
            return order, False

        intent = self.gateway.retrieve_payment_intent(payment_intent_id)
        self._require_success(intent, order)
        order = self._attach_reference(order, payment_intent_id)
        return self._mark_paid(order, NOTE_CLIENT)

    # --- fallback creation ---

    def validate_order_data(self, order_data: Optional[dict]) -> OrderDraft:
        if not order_data:
            raise IncompleteOrderData("Order data is required to create the order")
        missing = [f for f in REQUIRED_ORDER_FIELDS if not order_data.get(f)]
        if missing:
            raise IncompleteOrderData(
                f"Incomplete order data: missing {', '.join(missing)}", details={"missing": missing}
            )
        try:
            return OrderDraft.model_validate(order_data)
        except PydanticValidationError as e:
            errors = [{"loc": [str(p) for p in err["loc"]], "msg": err["msg"]} for err in e.errors()]
            raise IncompleteOrderData("Invalid order data", details={"errors": errors})

    def create_fallback_order(
        self, payment_intent_id: str, order_data: Optional[dict], owner: CartOwner
    ) -> Tuple[Order, bool]:
        """
        Create the order for a payment the gateway already confirmed. Returns
        (order, created). An order that already exists for the reference is
        returned (and marked paid if needed) instead of creating a second one.
        """
        existing = self.repo.get_by_payment_intent(payment_intent_id, fresh=True)
        if existing is not None:
            return self._resolve_existing(existing, payment_intent_id), False

        intent = self.gateway.retrieve_payment_intent(payment_intent_id)
        self._require_success(intent)
        draft = self.validate_order_data(order_data)
        items = self.orders.price_items(draft.items)
        total = sum(it.unit_price_cents * it.quantity for it in items)
        if intent.amount and intent.amount != total:
            log.error(
                "payment %s: gateway amount %d differs from catalogue total %d, no order created",
                payment_intent_id, intent.amount, total,
            )
            raise PaymentAmountMismatch(
                "Paid amount does not match the order total",
                details={"payment_intent_id": payment_intent_id, "paid_cents": intent.amount, "total_cents": total},
            )
        now = datetime.now(timezone.utc)

        def build(order_number: str) -> Order:
            lines = lines_from_items(items)
            return Order(
                order_number=order_number,
                user_id=owner.user_id,
                cart_session_id=None if owner.user_id else owner.session_id,
                status=PAYEE,
                payment_status=PAYMENT_PAID,
                payment_method=draft.payment_method,
                stripe_payment_intent_id=payment_intent_id,
                total_amount_cents=lines_total(lines),
                customer_info=draft.customer_info.model_dump(mode="json"),
                delivery_info=draft.delivery_info.model_dump(mode="json"),
                is_gift=draft.is_gift,
                gift_info=draft.gift_info.model_dump(mode="json") if draft.gift_info else None,
                confirmed_at=now,
                lines=lines,
                timeline=[OrderTimelineEntry(status=PAYEE, note=NOTE_FALLBACK, date=now)],
            )

        try:
            order = self.orders.insert_with_retry(build)
        except OrderAlreadyExists as e:
            log.info("fallback for %s lost the creation race to order %s", payment_intent_id, e.order.order_number)
            return self._resolve_existing(e.order, payment_intent_id), False

        if order.total_amount_cents != draft.total_amount_cents:
            log.warning(
                "order %s: submitted total %d differs from line total %d",
                order.order_number, draft.total_amount_cents, order.total_amount_cents,
            )
        log.info("fallback created order %s for %s", order.order_number, payment_intent_id)
        self._after_payment(order)
        return order, True

    def _resolve_existing(self, order: Order, payment_intent_id: str) -> Order:
        if order.payment_status == PAYMENT_PAID:
            log.info("order %s already exists for %s", order.order_number, payment_intent_id)
            return order
        intent = self.gateway.retrieve_payment_intent(payment_intent_id)
        self._require_success(intent, order)
        order, _ = self._mark_paid(order, NOTE_FALLBACK)
        return order
