"""
API v1 package initialization.

This module exposes the v1 routers of the order tracking API.
"""

from src.api.v1.orders import router as orders_router
from src.api.v1.payments import router as payments_router
from src.api.v1.products import router as products_router

__all__ = ["orders_router", "payments_router", "products_router"]
