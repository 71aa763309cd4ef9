from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship

from florist.db import Base
from florist.models.invoice import Invoice  # noqa: F401

PAYMENT_PENDING = "pending"
PAYMENT_PAID = "paid"
PAYMENT_FAILED = "failed"


class Order(Base):
    __tablename__ = "orders"
    id = Column(Integer, primary_key=True, autoincrement=True)
    order_number = Column(String(32), unique=True, nullable=False, index=True)
    user_id = Column(String(64), nullable=True, index=True)
    cart_session_id = Column(String(64), nullable=True)
    status = Column(String(32), nullable=False, default="payée", index=True)
    payment_status = Column(String(16), nullable=False, default=PAYMENT_PENDING, index=True)
    payment_method = Column(String(16), nullable=False, default="card")
    # external payment reference; the unique constraint is what makes confirmation idempotent
    stripe_payment_intent_id = Column(String(128), unique=True, nullable=True, index=True)
    total_amount_cents = Column(Integer, nullable=False, default=0)

    customer_info = Column(JSON, nullable=False)
    delivery_info = Column(JSON, nullable=False)
    is_gift = Column(Boolean, nullable=False, default=False)
    gift_info = Column(JSON, nullable=True)
    admin_notes = Column(Text, nullable=True)

    # lifecycle timestamps: each set once, on first entry into the matching status
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    prepared_at = Column(DateTime(timezone=True), nullable=True)
    ready_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    lines = relationship(
        "OrderLine", back_populates="order", cascade="all, delete-orphan", order_by="OrderLine.id"
    )
    timeline = relationship(
        "OrderTimelineEntry",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderTimelineEntry.id",
    )
    invoice = relationship("Invoice", back_populates="order", uselist=False)

    @property
    def items_count(self) -> int:
        return sum(l.quantity for l in self.lines)


class OrderLine(Base):
    """Snapshot of a cart line at order time; never re-priced from the catalogue."""

    __tablename__ = "order_lines"
    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, nullable=False)
    variant_id = Column(String(64), nullable=True)
    variant_name = Column(String(100), nullable=True)
    name = Column(String(200), nullable=False)
    image = Column(String(512), nullable=True)
    quantity = Column(Integer, nullable=False)
    unit_price_cents = Column(Integer, nullable=False)

    order = relationship("Order", back_populates="lines")


class OrderTimelineEntry(Base):
    """Append-only audit log of an order. Rows are inserted, never updated or deleted."""

    __tablename__ = "order_timeline"
    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    status = Column(String(32), nullable=False)
    date = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    note = Column(String(500), nullable=True)

    order = relationship("Order", back_populates="timeline")
