"""
Order management Pydantic schemas for API request/response validation.

This module defines the schemas for placing cash-on-delivery orders,
confirming card payments, approving or rejecting orders, administrative
patches, and tracking events and timelines.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from src.services.orders.enums import OrderStatus, PaymentMethod, PaymentStatus


def _validate_email(v: str) -> str:
    if "@" not in v or "." not in v.split("@")[-1]:
        raise ValueError("Invalid email format")
    return v.lower()


class BuyerRequest(BaseModel):
    """Buyer identity for order placement."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Buyer name",
    )
    email: str = Field(
        ...,
        min_length=3,
        max_length=255,
        description="Buyer email address",
    )

    @field_validator("email")
    @classmethod
    def validate_email_format(cls, v: str) -> str:
        """Validate email format."""
        return _validate_email(v)


class CashOnDeliveryRequest(BaseModel):
    """Request schema for a cash-on-delivery order."""

    product_id: UUID = Field(..., description="Product to order")
    quantity: Optional[int] = Field(
        None,
        description="Units to order; missing or non-positive values mean 1",
    )
    buyer: BuyerRequest


class PaymentSuccessRequest(BaseModel):
    """Request schema for confirming a card checkout."""

    model_config = ConfigDict(str_strip_whitespace=True)

    session_id: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Checkout session reference from the success redirect",
    )


class OrderStatusUpdate(BaseModel):
    """Request schema for approving or rejecting an order."""

    model_config = ConfigDict(str_strip_whitespace=True)

    status: str = Field(
        ...,
        min_length=1,
        description="Target status: approved or rejected",
    )
    approved_by: Optional[str] = Field(
        None,
        max_length=255,
        description="Manager approving the order",
    )
    record_event: Optional[bool] = Field(
        None,
        description="Also append an approval/rejection tracking event",
    )


class OrderUpdateRequest(BaseModel):
    """Request schema for an administrative order patch."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    buyer_name: Optional[str] = Field(None, min_length=1, max_length=255)
    buyer_email: Optional[str] = Field(None, min_length=3, max_length=255)
    quantity: Optional[int] = Field(None, ge=1)
    total_price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    approved_by: Optional[str] = Field(None, max_length=255)

    @field_validator("buyer_email")
    @classmethod
    def validate_email_format(cls, v: Optional[str]) -> Optional[str]:
        """Validate email format."""
        return _validate_email(v) if v is not None else v

    @model_validator(mode="after")
    def validate_at_least_one_field(self) -> "OrderUpdateRequest":
        """Ensure at least one field is provided for update."""
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for update")
        return self

    @model_validator(mode="after")
    def validate_no_null_required_fields(self) -> "OrderUpdateRequest":
        """Reject explicit nulls for columns that cannot be empty."""
        cleared = sorted(
            name
            for name in ("buyer_name", "buyer_email", "quantity", "total_price")
            if name in self.model_fields_set and getattr(self, name) is None
        )
        if cleared:
            raise ValueError(f"Fields cannot be null: {', '.join(cleared)}")
        return self

    def changes(self) -> dict:
        """Fields explicitly sent by the client."""
        return self.model_dump(include=self.model_fields_set)


class TrackingEventRequest(BaseModel):
    """Request schema for recording a tracking event."""

    model_config = ConfigDict(str_strip_whitespace=True)

    status: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Event label, e.g. Shipped",
    )
    location: Optional[str] = Field(None, max_length=255)
    note: Optional[str] = Field(None, max_length=2000)


class OrderResponse(BaseModel):
    """Complete order response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tracking_id: str
    product_id: Optional[UUID] = None
    product_name: str
    product_category: Optional[str] = None
    product_image: Optional[str] = None
    unit_price: Decimal
    buyer_name: str
    buyer_email: str
    quantity: int
    total_price: Decimal
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    transaction_id: Optional[str] = None
    status: OrderStatus
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class PaymentConfirmationResponse(BaseModel):
    """Outcome of confirming a card checkout."""

    success: bool
    duplicate: bool = False
    order_id: Optional[UUID] = None
    tracking_id: Optional[str] = None
    transaction_id: Optional[str] = None
    message: str


class TrackingEventResponse(BaseModel):
    """Tracking event response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_id: UUID
    tracking_id: str
    status: str
    location: Optional[str] = None
    note: Optional[str] = None
    created_at: datetime


class TimelineResponse(BaseModel):
    """Ordered tracking history of an order."""

    reference: str
    events: list[TrackingEventResponse]
