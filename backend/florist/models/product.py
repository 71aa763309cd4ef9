from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import relationship

from florist.db import Base

PRICING_FIXED = "fixed"
PRICING_VARIANTS = "variants"
PRICING_CUSTOM_RANGE = "custom_range"


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(64), nullable=True, index=True)
    image = Column(String(512), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    # exactly one of the pricing payloads below is populated, matching pricing_type
    pricing_type = Column(String(16), nullable=False, default=PRICING_FIXED)
    price_cents = Column(Integer, nullable=True)
    min_price_cents = Column(Integer, nullable=True)
    max_price_cents = Column(Integer, nullable=True)
    variants = relationship(
        "ProductVariant",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductVariant.position",
    )

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def has_variants(self) -> bool:
        return self.pricing_type == PRICING_VARIANTS

    @property
    def pricing(self):
        """Tagged pricing payload for the resolver (see florist.services.pricing)."""
        from florist.services.pricing import pricing_from_product

        return pricing_from_product(self)

    def __repr__(self):
        return f"<Product id={self.id} name={self.name} pricing={self.pricing_type}>"


class ProductVariant(Base):
    __tablename__ = "product_variants"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(100), nullable=False)
    price_cents = Column(Integer, nullable=False)
    description = Column(String(500), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    position = Column(Integer, default=0, nullable=False)

    product = relationship("Product", back_populates="variants")
