"""
Product catalog Pydantic schemas.

Request/response models for the storefront product endpoints.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProductCreate(BaseModel):
    """Request schema for adding a product."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    category: Optional[str] = Field(None, max_length=100)
    price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    available_quantity: int = Field(0, ge=0)
    images: list[str] = Field(default_factory=list, max_length=20)
    show_on_home_page: bool = False

    @field_validator("images")
    @classmethod
    def validate_images(cls, v: list[str]) -> list[str]:
        """Drop blank image URLs."""
        return [url.strip() for url in v if url and url.strip()]


class ProductResponse(BaseModel):
    """Product response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: Optional[str] = None
    category: Optional[str] = None
    price: Decimal
    available_quantity: int
    images: list[str]
    show_on_home_page: bool
    created_at: datetime
    updated_at: datetime
