"""
Product catalog data access.

The catalog is a collaborator of the order lifecycle: orders read a product to
snapshot it and adjust its stock, and the storefront lists products. Catalog
taxonomy, search and pagination are not handled here.
"""

import uuid
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import ProductNotFoundError, RepositoryError
from src.core.logging import get_logger
from src.database.models.product import Product

logger = get_logger(__name__)


class CatalogRepository:
    """
    Repository for product data access operations.

    Provides async methods for product lookup, storefront listings, product
    creation and stock adjustment.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize catalog repository.

        Args:
            session: Async database session
        """
        self.session = session

    async def get_product(self, product_id: uuid.UUID) -> Optional[Product]:
        """
        Get product by ID.

        Args:
            product_id: Product identifier

        Returns:
            Product if found, None otherwise

        Raises:
            RepositoryError: If query fails
        """
        try:
            logger.debug("Fetching product by ID", product_id=str(product_id))
            return await self.session.get(Product, product_id)
        except SQLAlchemyError as e:
            logger.error(
                "Failed to fetch product",
                product_id=str(product_id),
                error=str(e),
            )
            raise RepositoryError(
                "Failed to fetch product",
                product_id=str(product_id),
                error=str(e),
            ) from e

    async def adjust_quantity(self, product_id: uuid.UUID, delta: int) -> int:
        """
        Add ``delta`` to the product's available quantity in one statement.

        The arithmetic runs in the database so concurrent adjustments never
        lose updates. Negative results are allowed.

        Args:
            product_id: Product identifier
            delta: Signed change to apply

        Returns:
            Quantity after the adjustment

        Raises:
            ProductNotFoundError: If the product does not exist
            RepositoryError: If the update fails
        """
        try:
            stmt = (
                update(Product)
                .where(Product.id == product_id)
                .values(available_quantity=Product.available_quantity + delta)
                .returning(Product.available_quantity)
                .execution_options(synchronize_session="fetch")
            )
            result = await self.session.execute(stmt)
            new_quantity = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to adjust product quantity",
                product_id=str(product_id),
                delta=delta,
                error=str(e),
            )
            raise RepositoryError(
                "Failed to adjust product quantity",
                product_id=str(product_id),
                error=str(e),
            ) from e

        if new_quantity is None:
            raise ProductNotFoundError(product_id)

        logger.info(
            "Product quantity adjusted",
            product_id=str(product_id),
            delta=delta,
            available_quantity=new_quantity,
        )
        return new_quantity

    async def list_home_products(self, limit: int = 6) -> Sequence[Product]:
        """
        List the newest products flagged for the home page.

        Args:
            limit: Maximum number of products to return

        Returns:
            Products ordered newest first
        """
        try:
            stmt = (
                select(Product)
                .where(Product.show_on_home_page.is_(True))
                .order_by(Product.created_at.desc())
                .limit(limit)
            )
            result = await self.session.execute(stmt)
            return result.scalars().all()
        except SQLAlchemyError as e:
            logger.error("Failed to list home products", error=str(e))
            raise RepositoryError("Failed to list home products", error=str(e)) from e

    async def list_products(self) -> Sequence[Product]:
        """List all products, newest first."""
        try:
            stmt = select(Product).order_by(Product.created_at.desc())
            result = await self.session.execute(stmt)
            return result.scalars().all()
        except SQLAlchemyError as e:
            logger.error("Failed to list products", error=str(e))
            raise RepositoryError("Failed to list products", error=str(e)) from e

    async def create_product(
        self,
        title: str,
        price: Decimal,
        available_quantity: int = 0,
        description: Optional[str] = None,
        category: Optional[str] = None,
        images: Optional[list[str]] = None,
        show_on_home_page: bool = False,
    ) -> Product:
        """
        Create a product.

        Args:
            title: Display name
            price: Unit price
            available_quantity: Initial stock
            description: Optional description
            category: Optional category label
            images: Optional list of image URLs
            show_on_home_page: Whether to feature the product on the home page

        Returns:
            Created product

        Raises:
            RepositoryError: If the insert fails
        """
        product = Product(
            title=title,
            price=price,
            available_quantity=available_quantity,
            description=description,
            category=category,
            images=list(images or []),
            show_on_home_page=show_on_home_page,
        )
        try:
            self.session.add(product)
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to create product", title=title, error=str(e))
            raise RepositoryError(
                "Failed to create product",
                title=title,
                error=str(e),
            ) from e

        logger.info(
            "Product created",
            product_id=str(product.id),
            title=title,
            available_quantity=available_quantity,
        )
        return product
