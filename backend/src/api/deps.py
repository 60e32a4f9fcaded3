"""
FastAPI dependencies for services and database sessions.

This module wires the request-scoped database session into the catalog and
order lifecycle services and provides the payment gateway. Tests replace any
of these through ``app.dependency_overrides``.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import Settings, get_settings
from src.core.logging import get_logger
from src.database.connection import get_db
from src.services.catalog.repository import CatalogRepository
from src.services.orders.service import OrderLifecycleService
from src.services.payments.gateway import PaymentGateway, StripePaymentGateway

logger = get_logger(__name__)

DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_settings)]


@lru_cache()
def get_payment_gateway() -> PaymentGateway:
    """
    Get the process-wide Stripe payment gateway.

    Returns:
        Payment gateway backed by Stripe Checkout
    """
    logger.info("Creating Stripe payment gateway")
    return StripePaymentGateway(settings=get_settings())


Gateway = Annotated[PaymentGateway, Depends(get_payment_gateway)]


async def get_catalog(db: DatabaseSession) -> CatalogRepository:
    """
    Provide a catalog repository bound to the request session.

    Args:
        db: Database session

    Returns:
        Catalog repository
    """
    return CatalogRepository(db)


async def get_order_service(
    db: DatabaseSession,
    gateway: Gateway,
    settings: AppSettings,
) -> OrderLifecycleService:
    """
    Provide an order lifecycle service bound to the request session.

    Args:
        db: Database session
        gateway: Payment gateway
        settings: Application settings

    Returns:
        Order lifecycle service
    """
    return OrderLifecycleService(db, gateway=gateway, settings=settings)


Catalog = Annotated[CatalogRepository, Depends(get_catalog)]
OrderService = Annotated[OrderLifecycleService, Depends(get_order_service)]
