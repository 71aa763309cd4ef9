from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from florist.models.product import Product, ProductVariant
from florist.services.pricing import (
    CustomRangePricing,
    FixedPricing,
    Pricing,
    VariantPricing,
    validate_pricing,
)


class ProductRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, product_id: int) -> Optional[Product]:
        return (
            self.db.query(Product)
            .options(selectinload(Product.variants))
            .filter(Product.id == product_id)
            .first()
        )

    def list(
        self,
        q: Optional[str] = None,
        category: Optional[str] = None,
        page: int = 1,
        size: int = 20,
        include_inactive: bool = False,
    ) -> Tuple[List[Product], int]:
        query = self.db.query(Product)
        if not include_inactive:
            query = query.filter(Product.is_active == True)  # noqa: E712
        if category:
            query = query.filter(Product.category == category)
        if q:
            like = f"%{q}%"
            query = query.filter(
                (Product.name.ilike(like)) | (Product.description.ilike(like))
            )
        total = query.with_entities(func.count(Product.id)).scalar() or 0
        items = (
            query.options(selectinload(Product.variants))
            .order_by(Product.name)
            .offset((page - 1) * size)
            .limit(size)
            .all()
        )
        return items, total

    def create(
        self,
        name: str,
        pricing: Pricing,
        description: str = None,
        category: str = None,
        image: str = None,
        is_active: bool = True,
    ) -> Product:
        p = Product(
            name=name,
            description=description,
            category=category,
            image=image,
            is_active=is_active,
        )
        self.db.add(p)
        self.set_pricing(p, pricing)
        return p

    def set_pricing(self, product: Product, pricing: Pricing) -> Product:
        """
        Replace the product's pricing payload. Switching pricing type clears
        the payloads of the other types so exactly one is ever populated.
        """
        validate_pricing(pricing)
        product.pricing_type = pricing.pricing_type
        product.price_cents = None
        product.min_price_cents = None
        product.max_price_cents = None
        product.variants.clear()

        if isinstance(pricing, FixedPricing):
            product.price_cents = pricing.price_cents
        elif isinstance(pricing, CustomRangePricing):
            product.min_price_cents = pricing.min_price_cents
            product.max_price_cents = pricing.max_price_cents
        elif isinstance(pricing, VariantPricing):
            for index, v in enumerate(sorted(pricing.variants, key=lambda v: v.position)):
                product.variants.append(
                    ProductVariant(
                        name=v.name,
                        price_cents=v.price_cents,
                        is_active=v.is_active,
                        position=v.position if v.position is not None else index,
                    )
                )
        self.db.flush()
        return product
