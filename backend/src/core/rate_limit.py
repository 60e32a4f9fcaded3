"""
Request rate limiting.

A single slowapi limiter keyed by client address, shared by the application
and the routers that decorate endpoints with it.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from src.core.config import get_settings

limiter = Limiter(key_func=get_remote_address)


def checkout_rate_limit() -> str:
    """Rate limit applied to endpoints that call the payment provider."""
    return get_settings().checkout_rate_limit
