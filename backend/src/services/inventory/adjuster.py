"""
Inventory adjustment tied to order creation.

Stock is decremented with a single atomic UPDATE so concurrent orders for the
same product never lose a decrement. By default there is no stock gate and
the quantity may go negative (oversell). When the stock floor is enforced the
UPDATE becomes conditional on enough stock being left.
"""

import uuid
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import (
    InsufficientInventoryError,
    InvalidInputError,
    ProductNotFoundError,
    RepositoryError,
)
from src.core.logging import get_logger
from src.database.models.product import Product
from src.services.catalog.repository import CatalogRepository

logger = get_logger(__name__)


class InventoryAdjuster:
    """
    Applies stock changes caused by orders.

    Runs inside the caller's session, so a decrement commits or rolls back
    together with the order that caused it.
    """

    def __init__(
        self,
        session: AsyncSession,
        enforce_stock_floor: bool = False,
        catalog: Optional[CatalogRepository] = None,
    ):
        """
        Initialize inventory adjuster.

        Args:
            session: Async database session
            enforce_stock_floor: Refuse decrements that would go below zero
            catalog: Catalog repository, created from the session if omitted
        """
        self.session = session
        self.enforce_stock_floor = enforce_stock_floor
        self.catalog = catalog or CatalogRepository(session)

    async def decrement(self, product_id: uuid.UUID, amount: int) -> int:
        """
        Decrease a product's available quantity.

        Args:
            product_id: Product identifier
            amount: Units to remove, must be positive

        Returns:
            Quantity after the decrement

        Raises:
            InvalidInputError: If amount is not positive
            ProductNotFoundError: If the product does not exist
            InsufficientInventoryError: If the floor is enforced and stock is short
        """
        if amount <= 0:
            raise InvalidInputError(
                "Decrement amount must be positive",
                product_id=str(product_id),
                amount=amount,
            )

        if not self.enforce_stock_floor:
            return await self.catalog.adjust_quantity(product_id, -amount)

        return await self._conditional_decrement(product_id, amount)

    async def _conditional_decrement(self, product_id: uuid.UUID, amount: int) -> int:
        try:
            stmt = (
                update(Product)
                .where(
                    Product.id == product_id,
                    Product.available_quantity >= amount,
                )
                .values(available_quantity=Product.available_quantity - amount)
                .returning(Product.available_quantity)
                .execution_options(synchronize_session="fetch")
            )
            result = await self.session.execute(stmt)
            new_quantity = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(
                "Conditional inventory decrement failed",
                product_id=str(product_id),
                amount=amount,
                error=str(e),
            )
            raise RepositoryError(
                "Conditional inventory decrement failed",
                product_id=str(product_id),
                error=str(e),
            ) from e

        if new_quantity is not None:
            logger.info(
                "Inventory decremented",
                product_id=str(product_id),
                amount=amount,
                available_quantity=new_quantity,
            )
            return new_quantity

        product = await self.catalog.get_product(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)

        logger.warning(
            "Insufficient inventory for decrement",
            product_id=str(product_id),
            requested=amount,
            available=product.available_quantity,
        )
        raise InsufficientInventoryError(product_id, amount)
