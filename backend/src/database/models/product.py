"""
Product model for the marketplace catalog.

The catalog owns products; the order lifecycle only reads them and adjusts
``available_quantity``. The quantity has no non-negative constraint because
orders are accepted without a stock gate and oversell shows up as a negative
count.
"""

from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, CheckConstraint, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import BaseModel


class Product(BaseModel):
    """
    Product listed in the marketplace.

    Attributes:
        id: Unique product identifier (UUID)
        title: Display name
        description: Long description shown on the product page
        category: Free-form category label
        price: Unit price in the store currency
        available_quantity: Units in stock, may go negative on oversell
        images: List of image URLs
        show_on_home_page: Whether the product is featured on the home page
        created_at: Record creation timestamp
        updated_at: Last modification timestamp
    """

    __tablename__ = "products"

    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Product display name",
    )

    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Product description",
    )

    category: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        index=True,
        comment="Product category label",
    )

    price: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
        comment="Unit price",
    )

    available_quantity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Units in stock; negative values record oversell",
    )

    images: Mapped[list[Any]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        comment="Image URLs",
    )

    show_on_home_page: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Featured on the home page",
    )

    __table_args__ = (
        Index(
            "ix_products_home_created",
            "show_on_home_page",
            "created_at",
        ),
        CheckConstraint(
            "price >= 0",
            name="ck_products_price_non_negative",
        ),
        {"comment": "Marketplace products referenced by orders"},
    )

    @property
    def primary_image(self) -> Optional[str]:
        """First image URL, used for the order snapshot."""
        return self.images[0] if self.images else None
