"""
Database models package initialization.

This module exports all database models for SQLAlchemy and Alembic auto-generation.
Models are imported here to ensure they are registered with the Base metadata
for proper migration generation.
"""

from src.database.base import (
    AppendOnlyModel,
    Base,
    BaseModel,
    TimestampMixin,
    UUIDMixin,
)
from src.database.models.order import Order
from src.database.models.product import Product
from src.database.models.tracking import TrackingEvent

__all__ = [
    "AppendOnlyModel",
    "Base",
    "BaseModel",
    "TimestampMixin",
    "UUIDMixin",
    "Order",
    "Product",
    "TrackingEvent",
]
