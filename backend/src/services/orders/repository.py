"""
Order data access repository.

This module implements the OrderRepository class providing async methods for
inserting orders, looking them up by id, tracking code or payment reference,
listing them, and persisting status and field changes. The unique constraint
on ``transaction_id`` turns the insert of a card order into an atomic
test-and-set: a concurrent duplicate surfaces as DuplicateTransactionError.
"""

import uuid
from typing import Any, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import InvalidTransitionError, RepositoryError
from src.core.logging import get_logger
from src.database.models.order import Order
from src.services.orders.enums import OrderStatus

logger = get_logger(__name__)


class OrderCreationError(RepositoryError):
    """Raised when order creation fails."""

    code = "ORDER_CREATION_FAILED"


class DuplicateTransactionError(OrderCreationError):
    """Raised when an order already exists for a payment reference."""

    code = "DUPLICATE_TRANSACTION"

    def __init__(self, transaction_id: str):
        super().__init__(
            f"An order already exists for transaction {transaction_id}",
            transaction_id=transaction_id,
        )
        self.transaction_id = transaction_id


class OrderUpdateError(RepositoryError):
    """Raised when order update fails."""

    code = "ORDER_UPDATE_FAILED"


class OrderRepository:
    """
    Repository for order data access operations.

    Provides async methods for inserting, reading, listing, updating and
    removing orders with structured logging. Runs inside the caller's
    session and never commits.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize order repository.

        Args:
            session: Async database session
        """
        self.session = session

    async def insert(self, order: Order) -> Order:
        """
        Insert a new order.

        Args:
            order: Order to persist

        Returns:
            The persisted order with its identifier and timestamps populated

        Raises:
            DuplicateTransactionError: If the payment reference is already used
            OrderCreationError: If the insert fails for any other reason
        """
        try:
            logger.info(
                "Inserting order",
                tracking_id=order.tracking_id,
                transaction_id=order.transaction_id,
                payment_method=order.payment_method.value,
            )

            self.session.add(order)
            await self.session.flush()

            logger.info(
                "Order inserted",
                order_id=str(order.id),
                tracking_id=order.tracking_id,
            )
            return order

        except IntegrityError as e:
            await self.session.rollback()
            if order.transaction_id and "transaction_id" in str(e.orig):
                logger.warning(
                    "Order insert rejected - duplicate transaction",
                    transaction_id=order.transaction_id,
                )
                raise DuplicateTransactionError(order.transaction_id) from e

            logger.error(
                "Order insert failed - integrity error",
                tracking_id=order.tracking_id,
                error=str(e),
            )
            raise OrderCreationError(
                "Order creation failed due to data integrity violation",
                tracking_id=order.tracking_id,
                error=str(e),
            ) from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(
                "Order insert failed - database error",
                tracking_id=order.tracking_id,
                error=str(e),
            )
            raise OrderCreationError(
                "Order creation failed due to database error",
                tracking_id=order.tracking_id,
                error=str(e),
            ) from e

    async def get_by_id(self, order_id: uuid.UUID) -> Optional[Order]:
        """
        Get order by ID.

        Args:
            order_id: Order identifier

        Returns:
            Order if found, None otherwise

        Raises:
            RepositoryError: If query fails
        """
        return await self._fetch_one(
            select(Order).where(Order.id == order_id),
            order_id=str(order_id),
        )

    async def get_by_tracking_id(self, tracking_id: str) -> Optional[Order]:
        """
        Get order by its human-readable tracking code.

        Args:
            tracking_id: Tracking code

        Returns:
            Order if found, None otherwise
        """
        return await self._fetch_one(
            select(Order).where(Order.tracking_id == tracking_id),
            tracking_id=tracking_id,
        )

    async def get_by_transaction_id(self, transaction_id: str) -> Optional[Order]:
        """
        Get the order created for an external payment reference.

        Args:
            transaction_id: Payment reference

        Returns:
            Order if found, None otherwise
        """
        return await self._fetch_one(
            select(Order).where(Order.transaction_id == transaction_id),
            transaction_id=transaction_id,
        )

    async def list_by_status(self, status: Optional[OrderStatus] = None) -> Sequence[Order]:
        """
        List orders, newest first, optionally filtered by status.

        Args:
            status: Optional status filter

        Returns:
            Matching orders
        """
        stmt = select(Order).order_by(Order.created_at.desc())
        if status is not None:
            stmt = stmt.where(Order.status == status)
        return await self._fetch_all(stmt, status=status.value if status else None)

    async def list_by_buyer_email(self, buyer_email: str) -> Sequence[Order]:
        """List a buyer's orders, newest first."""
        stmt = (
            select(Order)
            .where(Order.buyer_email == buyer_email)
            .order_by(Order.created_at.desc())
        )
        return await self._fetch_all(stmt, buyer_email=buyer_email)

    async def update_status(self, order: Order, expected_status: OrderStatus) -> Order:
        """
        Persist a status change applied by the state machine.

        The UPDATE only matches while the row still holds ``expected_status``,
        so of two concurrent transitions out of the same state exactly one
        wins. The loser's in-memory changes are discarded.

        Args:
            order: Order whose status and stamps were changed in memory
            expected_status: Status the order was read with

        Returns:
            Updated order

        Raises:
            InvalidTransitionError: If the stored status changed meanwhile
            OrderUpdateError: If the update fails
        """
        order_id = order.id
        stmt = (
            update(Order)
            .where(Order.id == order_id, Order.status == expected_status)
            .values(
                status=order.status,
                updated_at=order.updated_at,
                approved_at=order.approved_at,
                approved_by=order.approved_by,
                rejected_at=order.rejected_at,
            )
            .returning(Order.id)
            .execution_options(synchronize_session=False)
        )
        target_status = order.status
        try:
            with self.session.no_autoflush:
                result = await self.session.execute(stmt)
                matched = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to update order status",
                order_id=str(order_id),
                status=target_status.value,
                error=str(e),
            )
            raise OrderUpdateError(
                "Failed to update order status",
                order_id=str(order_id),
                error=str(e),
            ) from e

        if matched is None:
            await self.session.refresh(order)
            logger.warning(
                "Order status changed concurrently",
                order_id=str(order_id),
                expected_status=expected_status.value,
                current_status=order.status.value,
                target_status=target_status.value,
            )
            raise InvalidTransitionError(
                f"Order is no longer {expected_status.value}",
                current_status=order.status.value,
                target_status=target_status.value,
                order_id=str(order_id),
            )

        logger.info("Order status updated", order_id=str(order_id), status=target_status.value)
        return order

    async def update_fields(self, order: Order, fields: dict[str, Any]) -> Order:
        """
        Apply and persist a set of column changes.

        Args:
            order: Order to update
            fields: Mapping of column name to new value

        Returns:
            Updated order

        Raises:
            OrderUpdateError: If the flush fails
        """
        for key, value in fields.items():
            setattr(order, key, value)
        return await self._flush_update(order, "fields", fields=sorted(fields))

    async def remove(self, order_id: uuid.UUID) -> bool:
        """
        Delete an order by ID.

        Tracking events are kept.

        Args:
            order_id: Order identifier

        Returns:
            True if an order was deleted, False if none matched

        Raises:
            OrderUpdateError: If the delete fails
        """
        order = await self.get_by_id(order_id)
        if order is None:
            logger.info("Order removal skipped - not found", order_id=str(order_id))
            return False

        try:
            await self.session.delete(order)
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to remove order",
                order_id=str(order_id),
                error=str(e),
            )
            raise OrderUpdateError(
                "Failed to remove order",
                order_id=str(order_id),
                error=str(e),
            ) from e

        logger.info("Order removed", order_id=str(order_id))
        return True

    async def _flush_update(self, order: Order, what: str, **context: Any) -> Order:
        # read before the flush; a rollback expires every loaded attribute
        order_id = str(order.id)
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(
                f"Failed to update order {what}",
                order_id=order_id,
                error=str(e),
                **context,
            )
            raise OrderUpdateError(
                f"Failed to update order {what}",
                order_id=order_id,
                error=str(e),
            ) from e

        logger.info(f"Order {what} updated", order_id=order_id, **context)
        return order

    async def _fetch_one(self, stmt, **context: Any) -> Optional[Order]:
        try:
            result = await self.session.execute(stmt)
            order = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Failed to fetch order", error=str(e), **context)
            raise RepositoryError("Failed to fetch order", error=str(e), **context) from e

        if order:
            logger.debug("Order found", **context)
        else:
            logger.debug("Order not found", **context)
        return order

    async def _fetch_all(self, stmt, **context: Any) -> Sequence[Order]:
        try:
            result = await self.session.execute(stmt)
            orders = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error("Failed to list orders", error=str(e), **context)
            raise RepositoryError("Failed to list orders", error=str(e), **context) from e

        logger.debug("Orders fetched", count=len(orders), **context)
        return orders
