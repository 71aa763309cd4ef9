from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from florist.services.pricing import (
    CustomRangePricing,
    FixedPricing,
    Variant,
    VariantPricing,
    display_price,
)


class VariantIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    price_cents: int = Field(..., gt=0)
    is_active: bool = True
    position: Optional[int] = Field(None, ge=0)


class FixedPricingIn(BaseModel):
    pricing_type: Literal["fixed"]
    price_cents: int = Field(..., gt=0)

    def to_pricing(self):
        return FixedPricing(price_cents=self.price_cents)


class VariantPricingIn(BaseModel):
    pricing_type: Literal["variants"]
    variants: List[VariantIn] = Field(..., min_length=1)

    def to_pricing(self):
        return VariantPricing(
            variants=tuple(
                Variant(
                    id="",
                    name=v.name,
                    price_cents=v.price_cents,
                    is_active=v.is_active,
                    position=v.position if v.position is not None else i,
                )
                for i, v in enumerate(self.variants)
            )
        )


class CustomRangePricingIn(BaseModel):
    pricing_type: Literal["custom_range"]
    min_price_cents: int = Field(..., gt=0)
    max_price_cents: int = Field(..., gt=0)

    def to_pricing(self):
        return CustomRangePricing(
            min_price_cents=self.min_price_cents, max_price_cents=self.max_price_cents
        )


PricingIn = Annotated[
    Union[FixedPricingIn, VariantPricingIn, CustomRangePricingIn],
    Field(discriminator="pricing_type"),
]


class ProductCreateIn(BaseModel):
    name: str = Field(..., min_length=2, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    category: Optional[str] = None
    image: Optional[str] = None
    is_active: bool = True
    pricing: PricingIn


class PricingUpdateIn(BaseModel):
    pricing: PricingIn


class VariantOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    price_cents: int
    is_active: bool
    position: int


class ProductOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    image: Optional[str] = None
    is_active: bool
    pricing_type: str
    price_cents: Optional[int] = None
    min_price_cents: Optional[int] = None
    max_price_cents: Optional[int] = None
    variants: List[VariantOut] = []
    display_price_cents: Optional[int] = None
    display_price_label: str = ""

    @classmethod
    def from_product(cls, product) -> "ProductOut":
        out = cls.model_validate(product)
        shown = display_price(product.pricing)
        out.display_price_cents = shown.min_cents
        out.display_price_label = shown.label
        return out
