"""
Tracking event model for the append-only order ledger.

Events are written once and never updated. ``order_id`` deliberately has no
foreign key to ``orders`` so the history outlives a removed order; the
denormalized ``tracking_id`` lets buyers read their timeline without an order
lookup.
"""

import uuid
from typing import Optional

from sqlalchemy import Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import AppendOnlyModel


class TrackingEvent(AppendOnlyModel):
    """
    Single entry in an order's tracking history.

    Attributes:
        id: Unique event identifier (UUID)
        order_id: Order the event belongs to
        tracking_id: Tracking code of that order
        status: Free-form label such as "Order Created" or "Shipped"
        location: Optional location text
        note: Optional free-form note
        created_at: When the event was recorded
    """

    __tablename__ = "tracking_events"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        index=True,
        comment="Order the event belongs to",
    )

    tracking_id: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        index=True,
        comment="Tracking code of the order",
    )

    status: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Event label",
    )

    location: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Event location",
    )

    note: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Free-form note",
    )

    __table_args__ = (
        Index(
            "ix_tracking_events_tracking_created",
            "tracking_id",
            "created_at",
        ),
        Index(
            "ix_tracking_events_order_created",
            "order_id",
            "created_at",
        ),
        {"comment": "Append-only order tracking ledger"},
    )

    def __repr__(self) -> str:
        return (
            f"<TrackingEvent(tracking_id={self.tracking_id}, "
            f"status={self.status!r}, created_at={self.created_at})>"
        )
