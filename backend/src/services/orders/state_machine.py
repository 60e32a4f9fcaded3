"""Order state machine implementation with transition validation.

This module implements the OrderStateMachine class for the approval lifecycle
of an order: a pending order is either approved or rejected, and both outcomes
are final. The machine only mutates the in-memory order; persisting the change
is the caller's job.
"""

from datetime import datetime
from typing import Any, Callable, Dict, Optional, Set, Union

from src.core.exceptions import InvalidTransitionError
from src.core.logging import get_logger
from src.database.base import utcnow
from src.services.orders.enums import (
    OrderStatus,
    get_allowed_order_transitions,
    validate_order_status_transition,
)

logger = get_logger(__name__)


class OrderStateMachine:
    """State machine for managing order approval transitions.

    Validates transitions against the transition table and stamps the
    timestamp and actor fields that belong to each target status.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        """Initialize state machine.

        Args:
            clock: Source of the current time for status stamps
        """
        self._clock = clock
        self._side_effects: Dict[
            OrderStatus,
            Callable[[Any, datetime, Optional[str]], None]
        ] = {
            OrderStatus.APPROVED: self._effect_approved,
            OrderStatus.REJECTED: self._effect_rejected,
        }

    @staticmethod
    def parse_status(value: Union[str, OrderStatus]) -> OrderStatus:
        """Convert a requested status into an OrderStatus.

        Args:
            value: Status value from the caller

        Returns:
            Matching OrderStatus

        Raises:
            InvalidTransitionError: If the value is not a known status
        """
        if isinstance(value, OrderStatus):
            return value
        try:
            return OrderStatus.from_string(value)
        except ValueError as e:
            raise InvalidTransitionError(
                str(e),
                current_status=None,
                target_status=value,
            ) from e

    def validate_transition(self, order: Any, target_status: OrderStatus) -> bool:
        """Validate if transition to target status is allowed.

        Args:
            order: Order instance to validate
            target_status: Desired target status

        Returns:
            True if transition is valid

        Raises:
            InvalidTransitionError: If transition is invalid
        """
        current_status = order.status

        if not validate_order_status_transition(current_status, target_status):
            allowed = get_allowed_order_transitions(current_status)
            raise InvalidTransitionError(
                f"Invalid transition from {current_status.value} to "
                f"{target_status.value}",
                current_status=current_status.value,
                target_status=target_status.value,
                order_id=str(order.id),
                allowed_transitions=sorted(s.value for s in allowed),
            )

        return True

    def apply_transition(
        self,
        order: Any,
        target_status: Union[str, OrderStatus],
        approved_by: Optional[str] = None,
    ) -> OrderStatus:
        """Apply state transition to order with its side effects.

        Args:
            order: Order instance to transition
            target_status: Target status to transition to
            approved_by: Manager approving the order

        Returns:
            The previous status

        Raises:
            InvalidTransitionError: If the status is unknown or not reachable
        """
        target_status = self.parse_status(target_status)
        self.validate_transition(order, target_status)

        old_status = order.status
        now = self._clock()

        order.status = target_status
        order.updated_at = now

        side_effect = self._side_effects.get(target_status)
        if side_effect is not None:
            side_effect(order, now, approved_by)

        logger.info(
            "State transition applied",
            order_id=str(order.id),
            transition=f"{old_status.value}->{target_status.value}",
            approved_by=approved_by,
        )

        return old_status

    def get_allowed_transitions(self, order: Any) -> Set[OrderStatus]:
        """Get allowed transitions from current order status."""
        return get_allowed_order_transitions(order.status)

    # Side effects

    def _effect_approved(self, order: Any, now: datetime, approved_by: Optional[str]) -> None:
        order.approved_at = now
        order.approved_by = approved_by

    def _effect_rejected(self, order: Any, now: datetime, approved_by: Optional[str]) -> None:
        order.rejected_at = now
