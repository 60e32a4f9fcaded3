"""
Payment schemas for the Stripe Checkout integration.

This module defines Pydantic schemas for starting a checkout session and for
acknowledging Stripe webhook deliveries.
"""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class CheckoutSessionRequest(BaseModel):
    """Request schema for starting a checkout for one unit of a product."""

    product_id: UUID = Field(..., description="Product to buy")
    customer_email: str = Field(
        ...,
        min_length=3,
        max_length=255,
        description="Buyer email, prefilled on the checkout page",
    )
    customer_name: Optional[str] = Field(
        None,
        max_length=255,
        description="Buyer name",
    )

    @field_validator("customer_email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Validate and normalize email."""
        email = v.strip().lower()
        if "@" not in email or "." not in email.split("@")[1]:
            raise ValueError("Invalid email format")
        return email

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "product_id": "123e4567-e89b-12d3-a456-426614174000",
                    "customer_email": "buyer@example.com",
                    "customer_name": "Jane Buyer",
                }
            ]
        }
    }


class CheckoutSessionResponse(BaseModel):
    """Checkout session created for the buyer."""

    session_id: str
    url: str


class WebhookAck(BaseModel):
    """Acknowledgement returned to Stripe for a webhook delivery."""

    received: bool = True
    event_type: str
    handled: bool = False
    tracking_id: Optional[str] = None
    duplicate: bool = False
