from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, update
from sqlalchemy.orm import Session, selectinload

from florist.models.order import PAYMENT_PAID, Order, OrderTimelineEntry


class OrderRepository:
    def __init__(self, db: Session):
        self.db = db

    def _query(self):
        return self.db.query(Order).options(
            selectinload(Order.lines), selectinload(Order.timeline)
        )

    def get(self, order_id: int, fresh: bool = False) -> Optional[Order]:
        """
        `fresh=True` expires the identity map first so the row is re-read from
        the database rather than served from this session's cache.
        """
        if fresh:
            self.db.expire_all()
        return self._query().filter(Order.id == order_id).first()

    def get_by_payment_intent(self, payment_intent_id: str, fresh: bool = False) -> Optional[Order]:
        if fresh:
            self.db.expire_all()
        return self._query().filter(Order.stripe_payment_intent_id == payment_intent_id).first()

    def latest_number_with_prefix(self, prefix: str) -> Optional[str]:
        return (
            self.db.query(func.max(Order.order_number))
            .filter(Order.order_number.like(f"{prefix}-%"))
            .scalar()
        )

    def list_for_user(
        self, user_id: str, status: Optional[str] = None, page: int = 1, limit: int = 10
    ) -> Tuple[List[Order], int]:
        query = self.db.query(Order).filter(Order.user_id == user_id)
        if status and status != "all":
            query = query.filter(Order.status == status)
        total = query.with_entities(func.count(Order.id)).scalar() or 0
        items = (
            query.options(selectinload(Order.lines), selectinload(Order.timeline))
            .order_by(Order.created_at.desc(), Order.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return items, total

    def add(self, order: Order) -> Order:
        self.db.add(order)
        self.db.flush()
        return order

    def append_timeline(
        self, order_id: int, status: str, note: Optional[str] = None, date: Optional[datetime] = None
    ) -> OrderTimelineEntry:
        entry = OrderTimelineEntry(
            order_id=order_id,
            status=status,
            note=note,
            date=date or datetime.now(timezone.utc),
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def compare_and_set_status(
        self, order_id: int, expected_status: str, new_status: str, extra: Optional[Dict] = None
    ) -> bool:
        """
        Single-row conditional update: only applies if the status is still the
        one the caller validated against. Returns whether a row changed.
        """
        values = {"status": new_status, "updated_at": datetime.now(timezone.utc)}
        values.update(extra or {})
        result = self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == expected_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def mark_paid_if_unpaid(self, order_id: int, extra: Optional[Dict] = None) -> bool:
        """Atomically flip payment_status to paid. Exactly one caller ever gets True per order."""
        values = {"payment_status": PAYMENT_PAID, "updated_at": datetime.now(timezone.utc)}
        values.update(extra or {})
        result = self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.payment_status != PAYMENT_PAID)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def set_payment_status_unless_paid(self, order_id: int, payment_status: str) -> bool:
        result = self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.payment_status != PAYMENT_PAID)
            .values(payment_status=payment_status, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
