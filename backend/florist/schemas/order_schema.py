import datetime as dt
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from florist.config import settings
from florist.services.order_status import MAX_NOTE_LENGTH

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class CustomerInfo(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., pattern=EMAIL_PATTERN)
    phone: str = Field(..., min_length=1, max_length=30)


class DeliveryAddress(BaseModel):
    street: str = Field(..., min_length=1, max_length=200)
    city: str = Field(..., min_length=1, max_length=100)
    zip_code: str = Field(..., pattern=r"^\d{5}$")
    complement: Optional[str] = Field(None, max_length=200)


class DeliveryInfo(BaseModel):
    type: Literal["delivery", "pickup"]
    address: Optional[DeliveryAddress] = None
    date: dt.date
    time_slot: Optional[Literal["9h-13h", "14h-19h"]] = None
    notes: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def _address_for_delivery(self):
        if self.type == "delivery" and self.address is None:
            raise ValueError("address is required for delivery")
        return self


class GiftInfo(BaseModel):
    recipient_name: str = Field(..., min_length=1, max_length=100)
    sender_name: str = Field(..., min_length=1, max_length=100)
    message: Optional[str] = Field(None, max_length=300)


class OrderItemIn(BaseModel):
    product_id: int
    name: str = Field(..., min_length=1)
    unit_price_cents: int = Field(..., gt=0)
    quantity: int = Field(..., ge=1, le=settings.CART_MAX_QUANTITY)
    image: Optional[str] = None
    variant_id: Optional[str] = None
    variant_name: Optional[str] = None


class _OrderDetails(BaseModel):
    customer_info: CustomerInfo
    delivery_info: DeliveryInfo
    is_gift: bool = False
    gift_info: Optional[GiftInfo] = None
    payment_method: Literal["card", "paypal"] = "card"

    @model_validator(mode="after")
    def _gift_info_for_gifts(self):
        if self.is_gift and self.gift_info is None:
            raise ValueError("gift_info is required when is_gift is true")
        if not self.is_gift:
            self.gift_info = None
        return self


class CheckoutIn(_OrderDetails):
    """Checkout submission. Without `items` the caller's cart is snapshotted."""

    items: Optional[List[OrderItemIn]] = None
    stripe_payment_intent_id: Optional[str] = None


class OrderDraft(_OrderDetails):
    """Complete order payload, as required by the fallback path after payment."""

    items: List[OrderItemIn] = Field(..., min_length=1)
    total_amount_cents: int = Field(..., gt=0)


class FallbackOrderIn(BaseModel):
    # kept loose on purpose: completeness is checked by the payment service
    order_data: Optional[dict] = None


class ConfirmPaymentIn(BaseModel):
    payment_intent_id: str = Field(..., min_length=1)
    order_id: int


class StatusUpdateIn(BaseModel):
    status: str
    note: Optional[str] = Field(None, max_length=MAX_NOTE_LENGTH)


class OrderLineOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    product_id: int
    variant_id: Optional[str] = None
    variant_name: Optional[str] = None
    name: str
    image: Optional[str] = None
    quantity: int
    unit_price_cents: int


class TimelineEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    status: str
    date: datetime
    note: Optional[str] = None


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    order_number: str
    user_id: Optional[str] = None
    status: str
    payment_status: str
    payment_method: str
    stripe_payment_intent_id: Optional[str] = None
    total_amount_cents: int
    customer_info: dict
    delivery_info: dict
    is_gift: bool
    gift_info: Optional[dict] = None
    admin_notes: Optional[str] = None
    lines: List[OrderLineOut] = []
    timeline: List[TimelineEntryOut] = []
    confirmed_at: Optional[datetime] = None
    prepared_at: Optional[datetime] = None
    ready_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class InvoiceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    invoice_no: str
    order_id: int
    total_cents: int
    tax_cents: int
    created_at: Optional[datetime] = None
    data: dict = {}
