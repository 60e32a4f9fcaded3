"""
Persistence layer: declarative base, async engine/session management and
the ORM models for products, orders and tracking events.
"""

__all__ = []
