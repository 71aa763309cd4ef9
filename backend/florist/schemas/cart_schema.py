from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from florist.services.pricing import VariantSelector


class AddItemIn(BaseModel):
    product_id: int
    quantity: int = 1
    variant_id: Optional[str] = None
    variant_name: Optional[str] = None
    variant_index: Optional[int] = None
    custom_price_cents: Optional[int] = None

    def selector(self) -> VariantSelector:
        return VariantSelector(
            variant_id=self.variant_id,
            variant_name=self.variant_name,
            variant_index=self.variant_index,
        )


class UpdateQuantityIn(BaseModel):
    quantity: int
    variant_id: Optional[str] = None
    variant_name: Optional[str] = None
    variant_index: Optional[int] = None

    def selector(self) -> VariantSelector:
        return VariantSelector(variant_name=self.variant_name, variant_index=self.variant_index)


class CartItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    product_id: int
    variant_id: Optional[str] = None
    variant_name: Optional[str] = None
    name: str
    image: Optional[str] = None
    quantity: int
    unit_price_cents: int


class CartOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    items: List[CartItemOut] = Field(default_factory=list)
    total_items: int = 0
    total_amount_cents: int = 0
    is_empty: bool = True
