from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from florist.db import Base


class CartItem(Base):
    __tablename__ = "cart_items"
    id = Column(Integer, primary_key=True, index=True)
    cart_id = Column(
        Integer, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = Column(Integer, nullable=False, index=True)
    variant_id = Column(String(64), nullable=True)
    variant_name = Column(String(100), nullable=True)
    name = Column(String(200), nullable=False)
    image = Column(String(512), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price_cents = Column(
        Integer, nullable=False, default=0
    )  # price resolved at time of add, in cents
    added_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    cart = relationship("Cart", back_populates="items")

    @property
    def key(self) -> str:
        return line_key(self.product_id, self.variant_id)


def line_key(product_id, variant_id=None) -> str:
    """Identity of a cart line: the product alone, or product + variant."""
    return f"{product_id}-{variant_id}" if variant_id else str(product_id)
