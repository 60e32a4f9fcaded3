"""
Order model for order management and approval tracking.

This module defines the Order model. An order keeps a snapshot of the product
as it was when the order was placed, the buyer, the payment details and the
approval state. The external payment reference is unique so a payment can
never produce two orders.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import BaseModel
from src.services.orders.enums import OrderStatus, PaymentMethod, PaymentStatus

TRANSACTION_ID_CONSTRAINT = "uq_orders_transaction_id"
TRACKING_ID_CONSTRAINT = "uq_orders_tracking_id"


def _enum_values(enum_cls: type) -> list[str]:
    return [member.value for member in enum_cls]


class Order(BaseModel):
    """
    Order model for managing customer orders.

    Attributes:
        id: Unique order identifier (UUID)
        tracking_id: Human-facing lookup code (ORD-YYYYMMDD-XXXXXX)
        product_id: Referenced product, nulled if the product is deleted
        product_name: Product title at order time
        product_category: Product category at order time
        product_image: First product image at order time
        unit_price: Product price at order time
        buyer_name: Buyer display name
        buyer_email: Buyer email address
        quantity: Ordered units
        total_price: unit_price x quantity, computed server-side
        payment_method: Card payment or cash on delivery
        payment_status: Paid or cod
        transaction_id: External payment reference, null for COD
        status: Approval state
        approved_by: Manager who approved the order
        approved_at: Approval timestamp
        rejected_at: Rejection timestamp
        created_at: Record creation timestamp
        updated_at: Last modification timestamp
    """

    __tablename__ = "orders"

    tracking_id: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="Human-readable tracking identifier",
    )

    product_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("products.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Ordered product identifier",
    )

    # Product snapshot
    product_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Product title at order time",
    )

    product_category: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Product category at order time",
    )

    product_image: Mapped[Optional[str]] = mapped_column(
        String(1000),
        nullable=True,
        comment="Product image at order time",
    )

    unit_price: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
        comment="Product price at order time",
    )

    # Buyer
    buyer_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Buyer display name",
    )

    buyer_email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        comment="Buyer email address",
    )

    # Pricing
    quantity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        comment="Ordered units",
    )

    total_price: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
        comment="Total order amount",
    )

    # Payment
    payment_method: Mapped[PaymentMethod] = mapped_column(
        SQLEnum(
            PaymentMethod,
            name="payment_method",
            values_callable=_enum_values,
            create_constraint=True,
        ),
        nullable=False,
        comment="Payment method",
    )

    payment_status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(
            PaymentStatus,
            name="payment_status",
            values_callable=_enum_values,
            create_constraint=True,
        ),
        nullable=False,
        comment="Payment status",
    )

    transaction_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="External payment reference, idempotency key for card orders",
    )

    # Approval
    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(
            OrderStatus,
            name="order_status",
            values_callable=_enum_values,
            create_constraint=True,
        ),
        nullable=False,
        default=OrderStatus.PENDING,
        index=True,
        comment="Current order status",
    )

    approved_by: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Manager who approved the order",
    )

    approved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Approval timestamp",
    )

    rejected_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Rejection timestamp",
    )

    __table_args__ = (
        UniqueConstraint("tracking_id", name=TRACKING_ID_CONSTRAINT),
        # NULLs never collide, so only card orders are constrained
        UniqueConstraint("transaction_id", name=TRANSACTION_ID_CONSTRAINT),
        Index(
            "ix_orders_status_created",
            "status",
            "created_at",
        ),
        Index(
            "ix_orders_buyer_created",
            "buyer_email",
            "created_at",
        ),
        CheckConstraint(
            "quantity >= 1",
            name="ck_orders_quantity_positive",
        ),
        CheckConstraint(
            "total_price >= 0",
            name="ck_orders_total_price_non_negative",
        ),
        {"comment": "Customer orders with approval state"},
    )

    def __repr__(self) -> str:
        return (
            f"<Order(id={self.id}, tracking_id={self.tracking_id}, "
            f"status={self.status.value if self.status else None}, "
            f"total_price={self.total_price})>"
        )

    @property
    def is_terminal(self) -> bool:
        """Check if the order can no longer change status."""
        return self.status.is_terminal()
