"""
Append-only tracking ledger.

Every order has a sequence of tracking events, written with both the order id
and the tracking id so either can be used to read the timeline. The ledger
offers no update or delete operations.
"""

import uuid
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import InvalidInputError, RepositoryError
from src.core.logging import get_logger
from src.database.base import utcnow
from src.database.models.tracking import TrackingEvent

logger = get_logger(__name__)

ORDER_CREATED = "Order Created"
ORDER_CREATED_COD = "Order Created (COD)"
ORDER_APPROVED = "Order Approved"
ORDER_REJECTED = "Order Rejected"


class TrackingLedger:
    """Repository for the append-only tracking event log."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(
        self,
        order_id: uuid.UUID,
        tracking_id: str,
        status: str,
        location: Optional[str] = None,
        note: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> TrackingEvent:
        """
        Append an event to an order's history.

        Args:
            order_id: Order the event belongs to
            tracking_id: Tracking code of the order
            status: Event label
            location: Optional location text
            note: Optional note
            created_at: Event time, defaults to now

        Returns:
            The stored event

        Raises:
            InvalidInputError: If the status label is empty
            RepositoryError: If the insert fails
        """
        if not status or not status.strip():
            raise InvalidInputError(
                "Tracking event status is required",
                order_id=str(order_id),
            )

        event = TrackingEvent(
            order_id=order_id,
            tracking_id=tracking_id,
            status=status.strip(),
            location=location,
            note=note,
            created_at=created_at or utcnow(),
        )

        try:
            self.session.add(event)
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to append tracking event",
                order_id=str(order_id),
                tracking_id=tracking_id,
                error=str(e),
            )
            raise RepositoryError(
                "Failed to append tracking event",
                order_id=str(order_id),
                tracking_id=tracking_id,
                error=str(e),
            ) from e

        logger.info(
            "Tracking event appended",
            order_id=str(order_id),
            tracking_id=tracking_id,
            status=event.status,
        )
        return event

    async def list_for_order(self, order_id: uuid.UUID) -> Sequence[TrackingEvent]:
        """Events of an order, oldest first."""
        stmt = (
            select(TrackingEvent)
            .where(TrackingEvent.order_id == order_id)
            .order_by(TrackingEvent.created_at.asc(), TrackingEvent.id.asc())
        )
        return await self._fetch(stmt, order_id=str(order_id))

    async def list_for_tracking_id(self, tracking_id: str) -> Sequence[TrackingEvent]:
        """Events recorded under a tracking code, oldest first."""
        stmt = (
            select(TrackingEvent)
            .where(TrackingEvent.tracking_id == tracking_id)
            .order_by(TrackingEvent.created_at.asc(), TrackingEvent.id.asc())
        )
        return await self._fetch(stmt, tracking_id=tracking_id)

    async def count_for_order(self, order_id: uuid.UUID) -> int:
        try:
            stmt = (
                select(func.count())
                .select_from(TrackingEvent)
                .where(TrackingEvent.order_id == order_id)
            )
            result = await self.session.execute(stmt)
            return result.scalar_one()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to count tracking events",
                order_id=str(order_id),
                error=str(e),
            )
            raise RepositoryError(
                "Failed to count tracking events",
                order_id=str(order_id),
                error=str(e),
            ) from e

    async def _fetch(self, stmt, **context) -> Sequence[TrackingEvent]:
        try:
            result = await self.session.execute(stmt)
            events = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error("Failed to read tracking events", error=str(e), **context)
            raise RepositoryError(
                "Failed to read tracking events",
                error=str(e),
                **context,
            ) from e

        logger.debug("Tracking events fetched", count=len(events), **context)
        return events
