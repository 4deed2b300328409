from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional
from pydantic import BaseModel, Field, field_validator


class ShippingAddress(BaseModel):
    line1: str = Field(min_length=1)
    line2: Optional[str] = None
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    country: str = "India"
    zip: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    landmark: Optional[str] = None


class DeliveryMetadata(BaseModel):
    mode: Literal["surface", "express"] = "surface"
    estimated_days: Optional[int] = None
    expected_date: Optional[str] = None
    express_charge: Decimal = Field(default=Decimal("0"), ge=0)
    pincode: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    saved_at: Optional[datetime] = None


class CheckoutDetails(BaseModel):
    """What the customer submits at checkout; replayed verbatim for online payments."""

    shipping_address: ShippingAddress
    delivery: DeliveryMetadata = DeliveryMetadata()
    notes: Optional[str] = None
    gift_wrap: bool = False
    gift_message: Optional[str] = None


class OrderHeader(BaseModel):
    user_id: int
    subtotal: Decimal
    express_charge: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")
    final_total: Decimal
    shipping_address: ShippingAddress
    delivery_metadata: Optional[DeliveryMetadata] = None
    payment_method: Literal["cod", "online"]
    payment_status: str = "unpaid"
    status: str = "pending"
    notes: Optional[str] = None
    gift_wrap: bool = False
    gift_message: Optional[str] = None
    requires_review: bool = False
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    gateway_signature: Optional[str] = None


class OrderLineCreate(BaseModel):
    bundle_id: Optional[int] = None
    product_id: Optional[int] = None
    title: Optional[str] = None
    quantity: int = Field(ge=1)
    unit_price: Decimal
    bundle_origin: Literal["bundle", "single"] = "bundle"


class OrderLineResponse(BaseModel):
    id: int
    bundle_id: Optional[int]
    product_id: Optional[int]
    title: Optional[str]
    quantity: int
    unit_price: Decimal
    bundle_origin: str

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: int
    user_id: int
    subtotal: Decimal
    express_charge: Decimal
    discount: Decimal
    final_total: Decimal
    shipping_address: dict
    delivery_metadata: Optional[dict]
    payment_method: str
    payment_status: str
    status: str
    requires_review: bool
    gateway_order_id: Optional[str]
    gateway_payment_id: Optional[str]
    notes: Optional[str]
    gift_wrap: bool
    gift_message: Optional[str]
    cancellation_reason: Optional[str]
    created_at: Optional[datetime]
    confirmed_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    lines: List[OrderLineResponse] = []

    class Config:
        from_attributes = True


class StatusUpdate(BaseModel):
    status: str


class PaymentStatusUpdate(BaseModel):
    payment_status: str
    gateway_payment_id: Optional[str] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = None

    @field_validator("reason")
    @classmethod
    def strip_reason(cls, value):
        return value.strip() if value else value
