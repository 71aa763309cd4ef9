"""
Pricing resolution for the three catalogue pricing modes.

A product's pricing is one of three payloads:

    FixedPricing(price_cents)
    VariantPricing(variants)
    CustomRangePricing(min_price_cents, max_price_cents)

`resolve_price` turns a payload plus the customer's selection into the one
authoritative unit price used by the cart and, through the cart snapshot, by
the order. `display_price` computes what the catalogue shows. Both are pure:
no database access, no clock.
"""
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple, Union

from florist.errors import (
    InvalidPricing,
    InvalidProduct,
    PriceOutOfRange,
    VariantInactive,
    VariantNotFound,
)
from florist.models.product import PRICING_CUSTOM_RANGE, PRICING_FIXED, PRICING_VARIANTS


@dataclass(frozen=True)
class Variant:
    id: str
    name: str
    price_cents: int
    is_active: bool = True
    position: int = 0


@dataclass(frozen=True)
class FixedPricing:
    price_cents: Optional[int]
    pricing_type: str = field(default=PRICING_FIXED, init=False)


@dataclass(frozen=True)
class VariantPricing:
    variants: Tuple[Variant, ...] = ()
    pricing_type: str = field(default=PRICING_VARIANTS, init=False)


@dataclass(frozen=True)
class CustomRangePricing:
    min_price_cents: int
    max_price_cents: int
    pricing_type: str = field(default=PRICING_CUSTOM_RANGE, init=False)


Pricing = Union[FixedPricing, VariantPricing, CustomRangePricing]


@dataclass(frozen=True)
class VariantSelector:
    """How the client named a variant. Identifiers can be stale after catalogue edits, hence the fallbacks."""

    variant_id: Optional[str] = None
    variant_name: Optional[str] = None
    variant_index: Optional[int] = None

    def is_empty(self) -> bool:
        return self.variant_id is None and self.variant_name is None and self.variant_index is None


@dataclass(frozen=True)
class ResolvedPrice:
    unit_price_cents: int
    variant_id: Optional[str] = None
    variant_name: Optional[str] = None


@dataclass(frozen=True)
class DisplayPrice:
    min_cents: Optional[int]
    max_cents: Optional[int]
    label: str

    @property
    def is_range(self) -> bool:
        return self.min_cents is not None and self.min_cents != self.max_cents


def format_price(cents: int) -> str:
    return f"{cents // 100}.{cents % 100:02d} €"


def _slug(text: str) -> str:
    text = unicodedata.normalize("NFKD", text or "").encode("ascii", "ignore").decode("ascii")
    return re.sub(r"\s+", "_", text.strip().lower())


def stable_variant_id(index: int, name: str) -> str:
    """Positional id some clients send when they never saw the persisted one."""
    return f"variant_{index}_{_slug(name)}"


# --- variant lookup chain: identifier, then name, then index ---


def _by_id(variants: Sequence[Variant], selector: VariantSelector) -> Optional[Variant]:
    if not selector.variant_id:
        return None
    for index, v in enumerate(variants):
        if v.id == selector.variant_id or stable_variant_id(index, v.name) == selector.variant_id:
            return v
    return None


def _by_name(variants: Sequence[Variant], selector: VariantSelector) -> Optional[Variant]:
    if not selector.variant_name:
        return None
    return next((v for v in variants if v.name == selector.variant_name), None)


def _by_index(variants: Sequence[Variant], selector: VariantSelector) -> Optional[Variant]:
    index = selector.variant_index
    if index is None or index < 0 or index >= len(variants):
        return None
    return variants[index]


VARIANT_LOOKUP_STRATEGIES: List[Callable[[Sequence[Variant], VariantSelector], Optional[Variant]]] = [
    _by_id,
    _by_name,
    _by_index,
]


def find_variant(variants: Sequence[Variant], selector: Optional[VariantSelector]) -> Optional[Variant]:
    if selector is None:
        return None
    for strategy in VARIANT_LOOKUP_STRATEGIES:
        match = strategy(variants, selector)
        if match is not None:
            return match
    return None


def resolve_price(
    pricing: Pricing,
    selector: Optional[VariantSelector] = None,
    explicit_price_cents: Optional[int] = None,
) -> ResolvedPrice:
    """
    Return the authoritative unit price for a selection.

    Raises:
        InvalidProduct: fixed price missing or not positive.
        VariantNotFound: no variant matched the selector (or the product has none).
        VariantInactive: the matched variant is switched off.
        PriceOutOfRange: custom price outside [min, max] (bounds inclusive).
    """
    if isinstance(pricing, FixedPricing):
        if pricing.price_cents is None or pricing.price_cents <= 0:
            raise InvalidProduct("Product has no valid price")
        return ResolvedPrice(unit_price_cents=pricing.price_cents)

    if isinstance(pricing, VariantPricing):
        if not pricing.variants:
            raise VariantNotFound("Product has no variants to choose from")
        variant = find_variant(pricing.variants, selector)
        if variant is None:
            raise VariantNotFound(
                "Selected variant not found",
                details={
                    "available": [
                        {"index": i, "id": v.id, "name": v.name}
                        for i, v in enumerate(pricing.variants)
                    ]
                },
            )
        if not variant.is_active:
            raise VariantInactive(f'Variant "{variant.name}" is no longer available')
        return ResolvedPrice(
            unit_price_cents=variant.price_cents,
            variant_id=variant.id,
            variant_name=variant.name,
        )

    if isinstance(pricing, CustomRangePricing):
        low, high = pricing.min_price_cents, pricing.max_price_cents
        if explicit_price_cents is None or not (low <= explicit_price_cents <= high):
            raise PriceOutOfRange(
                f"Price must be between {format_price(low)} and {format_price(high)}",
                details={"min_price_cents": low, "max_price_cents": high},
            )
        return ResolvedPrice(unit_price_cents=explicit_price_cents)

    raise TypeError(f"Unknown pricing payload: {pricing!r}")


def display_price(pricing: Pricing) -> DisplayPrice:
    if isinstance(pricing, FixedPricing):
        if not pricing.price_cents:
            return DisplayPrice(None, None, "Price not set")
        return DisplayPrice(pricing.price_cents, pricing.price_cents, format_price(pricing.price_cents))

    if isinstance(pricing, VariantPricing):
        prices = sorted(v.price_cents for v in pricing.variants if v.is_active)
        if not prices:
            return DisplayPrice(None, None, "Price unavailable")
        low, high = prices[0], prices[-1]
    elif isinstance(pricing, CustomRangePricing):
        low, high = pricing.min_price_cents, pricing.max_price_cents
    else:
        raise TypeError(f"Unknown pricing payload: {pricing!r}")

    label = f"from {format_price(low)}" if low != high else format_price(low)
    return DisplayPrice(low, high, label)


def validate_pricing(pricing: Pricing) -> None:
    """Catalogue write-time checks; a product is never stored with an unusable payload."""
    if isinstance(pricing, FixedPricing):
        if pricing.price_cents is None or pricing.price_cents <= 0:
            raise InvalidPricing("A fixed-price product needs a positive price")
    elif isinstance(pricing, VariantPricing):
        if not pricing.variants:
            raise InvalidPricing("At least one variant is required")
        if any(v.price_cents <= 0 for v in pricing.variants):
            raise InvalidPricing("Variant prices must be positive")
    elif isinstance(pricing, CustomRangePricing):
        if pricing.min_price_cents <= 0:
            raise InvalidPricing("Minimum price must be positive")
        if pricing.max_price_cents <= pricing.min_price_cents:
            raise InvalidPricing("Maximum price must be greater than minimum price")
    else:
        raise TypeError(f"Unknown pricing payload: {pricing!r}")


def pricing_from_product(product) -> Pricing:
    if product.pricing_type == PRICING_VARIANTS:
        return VariantPricing(
            variants=tuple(
                Variant(
                    id=str(v.id),
                    name=v.name,
                    price_cents=v.price_cents,
                    is_active=bool(v.is_active),
                    position=v.position or 0,
                )
                for v in product.variants
            )
        )
    if product.pricing_type == PRICING_CUSTOM_RANGE:
        return CustomRangePricing(
            min_price_cents=product.min_price_cents, max_price_cents=product.max_price_cents
        )
    return FixedPricing(price_cents=product.price_cents)
