from datetime import datetime, timedelta, timezone

from sqlalchemy import Column, DateTime, Integer, String, func
from sqlalchemy.orm import relationship

from florist.config import settings
from florist.db import Base


def _default_expiry():
    return datetime.now(timezone.utc) + timedelta(days=settings.CART_TTL_DAYS)


class Cart(Base):
    __tablename__ = "carts"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), unique=True, nullable=True, index=True)  # authenticated owner
    session_id = Column(String(64), unique=True, nullable=True, index=True)  # guest token
    total_items = Column(Integer, nullable=False, default=0)
    total_amount_cents = Column(Integer, nullable=False, default=0)
    expires_at = Column(DateTime(timezone=True), nullable=False, default=_default_expiry, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    items = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.id",
    )

    def recalculate_totals(self):
        """Derived totals; called after every mutation of `items`."""
        self.total_items = sum(it.quantity for it in self.items)
        self.total_amount_cents = sum(it.unit_price_cents * it.quantity for it in self.items)
        self.expires_at = _default_expiry()

    @property
    def is_empty(self) -> bool:
        return len(self.items) == 0
