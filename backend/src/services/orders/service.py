"""
Order lifecycle service orchestrating creation, approval and tracking.

This module implements the OrderLifecycleService class. It creates orders from
the two payment paths (confirmed card checkout and cash on delivery), applies
approval transitions, records tracking events and reads timelines. Every
operation runs inside the caller's session, so an order, the stock it consumed
and its first tracking event are committed together or not at all.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Optional, Sequence, Union

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import Settings, get_settings
from src.core.exceptions import (
    InvalidInputError,
    OrderNotFoundError,
    ProductNotFoundError,
)
from src.core.logging import bind_order_context, get_logger, log_performance
from src.database.base import utcnow
from src.database.models.order import Order
from src.database.models.product import Product
from src.database.models.tracking import TrackingEvent
from src.services.catalog.repository import CatalogRepository
from src.services.inventory.adjuster import InventoryAdjuster
from src.services.orders.enums import OrderStatus, PaymentMethod, PaymentStatus
from src.services.orders.repository import DuplicateTransactionError, OrderRepository
from src.services.orders.results import (
    ConfirmationResult,
    OrderAlreadyExists,
    OrderCreated,
    PaymentNotComplete,
)
from src.services.orders.state_machine import OrderStateMachine
from src.services.payments.gateway import PaymentGateway
from src.services.tracking.ledger import (
    ORDER_APPROVED,
    ORDER_CREATED,
    ORDER_CREATED_COD,
    ORDER_REJECTED,
    TrackingLedger,
)

logger = get_logger(__name__)

EDITABLE_ORDER_FIELDS = frozenset(
    {"buyer_name", "buyer_email", "quantity", "total_price", "approved_by"}
)
REQUIRED_ORDER_FIELDS = frozenset({"buyer_name", "buyer_email", "quantity", "total_price"})

TRANSITION_EVENTS = {
    OrderStatus.APPROVED: ORDER_APPROVED,
    OrderStatus.REJECTED: ORDER_REJECTED,
}


def generate_tracking_id(prefix: str = "ORD", now: Optional[datetime] = None) -> str:
    """
    Generate a human-readable tracking code.

    Format is ``PREFIX-YYYYMMDD-XXXXXX`` with six random uppercase hex digits.
    Collisions are not re-rolled; the unique constraint rejects them.

    Args:
        prefix: Code prefix
        now: Date to embed, defaults to the current UTC time

    Returns:
        Tracking code
    """
    now = now or utcnow()
    return f"{prefix}-{now:%Y%m%d}-{uuid.uuid4().hex[:6].upper()}"


@dataclass(frozen=True)
class BuyerInfo:
    """Buyer identity as given at checkout."""

    name: Optional[str]
    email: Optional[str]


class OrderLifecycleService:
    """
    Order lifecycle service.

    Provides methods for creating orders from payment confirmations and cash
    on delivery requests, approving or rejecting them, and maintaining their
    tracking history.

    Attributes:
        repository: Order repository for data access
        ledger: Append-only tracking ledger
        catalog: Product catalog
        inventory: Inventory adjuster
        state_machine: Approval state machine
        gateway: Payment confirmation gateway
    """

    def __init__(
        self,
        session: AsyncSession,
        gateway: Optional[PaymentGateway] = None,
        settings: Optional[Settings] = None,
        tracking_id_factory: Optional[Callable[[], str]] = None,
    ):
        """
        Initialize order lifecycle service.

        Args:
            session: Async database session shared by all collaborators
            gateway: Payment gateway, required for card orders
            settings: Application settings
            tracking_id_factory: Override for tracking code generation
        """
        self.settings = settings or get_settings()
        self.session = session
        self.repository = OrderRepository(session)
        self.ledger = TrackingLedger(session)
        self.catalog = CatalogRepository(session)
        self.inventory = InventoryAdjuster(
            session,
            enforce_stock_floor=self.settings.enforce_stock_floor,
            catalog=self.catalog,
        )
        self.state_machine = OrderStateMachine()
        self.gateway = gateway
        self._tracking_id_factory = tracking_id_factory or (
            lambda: generate_tracking_id(self.settings.tracking_id_prefix)
        )

    # Creation

    async def create_from_payment_confirmation(self, session_ref: str) -> ConfirmationResult:
        """
        Create a card-paid order from a checkout session.

        Safe to call repeatedly for the same session: once an order exists for
        the payment reference every later call returns it as a duplicate
        without touching stock or the ledger.

        Args:
            session_ref: Checkout session reference

        Returns:
            OrderCreated, OrderAlreadyExists or PaymentNotComplete

        Raises:
            InvalidInputError: If the session or its buyer data is unusable
            UpstreamUnavailableError: If the payment provider cannot be reached
            ProductNotFoundError: If the paid product no longer exists
        """
        if self.gateway is None:
            raise InvalidInputError("Card payments are not configured")

        with log_performance(logger, "create_from_payment_confirmation", session_ref=session_ref):
            confirmation = await self.gateway.confirm_payment(session_ref)
            transaction_id = confirmation.payment_reference

            if transaction_id:
                existing = await self.repository.get_by_transaction_id(transaction_id)
                if existing is not None:
                    logger.info(
                        "Payment already processed",
                        order_id=str(existing.id),
                        tracking_id=existing.tracking_id,
                        transaction_id=transaction_id,
                    )
                    return OrderAlreadyExists(existing)

            if not confirmation.is_complete:
                logger.info(
                    "Payment not complete, no order created",
                    session_ref=session_ref,
                    status=confirmation.status,
                )
                return PaymentNotComplete(
                    session_ref=session_ref,
                    payment_status=confirmation.status,
                    transaction_id=transaction_id,
                )

            if not transaction_id:
                raise InvalidInputError(
                    "Completed payment has no payment reference",
                    session_ref=session_ref,
                )
            if not confirmation.buyer_email:
                raise InvalidInputError(
                    "Payment confirmation has no buyer email",
                    session_ref=session_ref,
                )

            product = await self._load_product(confirmation.product_ref)

            total_price = self._total_price(product.price, 1)
            if (
                confirmation.amount_total is not None
                and confirmation.amount_total != total_price
            ):
                logger.warning(
                    "Charged amount differs from catalog price",
                    transaction_id=transaction_id,
                    product_id=str(product.id),
                    amount_total=str(confirmation.amount_total),
                    catalog_total=str(total_price),
                )

            order = self._build_order(
                product=product,
                buyer=BuyerInfo(
                    name=confirmation.buyer_name or confirmation.buyer_email,
                    email=confirmation.buyer_email,
                ),
                quantity=1,
                payment_method=PaymentMethod.CARD_PAYMENT,
                payment_status=PaymentStatus.PAID,
                transaction_id=transaction_id,
            )

            try:
                order = await self.repository.insert(order)
            except DuplicateTransactionError:
                existing = await self.repository.get_by_transaction_id(transaction_id)
                if existing is None:
                    raise
                logger.info(
                    "Concurrent confirmation resolved to existing order",
                    order_id=str(existing.id),
                    transaction_id=transaction_id,
                )
                return OrderAlreadyExists(existing)

            await self._after_insert(order, ORDER_CREATED)
            return OrderCreated(order)

    async def create_cash_on_delivery(
        self,
        product_id: Union[str, uuid.UUID],
        quantity: Optional[int],
        buyer: BuyerInfo,
    ) -> Order:
        """
        Create a cash-on-delivery order.

        There is no idempotency key on this path: every call creates a new
        order.

        Args:
            product_id: Product being ordered
            quantity: Units; None or values below 1 are treated as 1
            buyer: Buyer name and email, both required

        Returns:
            The created order

        Raises:
            InvalidInputError: If buyer name or email is missing
            ProductNotFoundError: If the product does not exist
        """
        if not buyer.name or not buyer.name.strip():
            raise InvalidInputError("Buyer name is required")
        if not buyer.email or not buyer.email.strip():
            raise InvalidInputError("Buyer email is required")

        quantity = quantity if quantity and quantity > 0 else 1

        with log_performance(logger, "create_cash_on_delivery", product_id=str(product_id)):
            product = await self._load_product(product_id)
            order = self._build_order(
                product=product,
                buyer=BuyerInfo(name=buyer.name.strip(), email=buyer.email.strip()),
                quantity=quantity,
                payment_method=PaymentMethod.CASH_ON_DELIVERY,
                payment_status=PaymentStatus.COD,
                transaction_id=None,
            )
            order = await self.repository.insert(order)
            await self._after_insert(order, ORDER_CREATED_COD)
            return order

    # Transitions and tracking

    async def transition(
        self,
        order_id: uuid.UUID,
        new_status: Union[str, OrderStatus],
        approved_by: Optional[str] = None,
        record_event: Optional[bool] = None,
    ) -> Order:
        """
        Approve or reject a pending order.

        Args:
            order_id: Order identifier
            new_status: Target status, ``approved`` or ``rejected``
            approved_by: Manager approving the order
            record_event: Append an approval/rejection tracking event; defaults
                to the ``ledger_event_on_transition`` setting

        Returns:
            The updated order

        Raises:
            OrderNotFoundError: If the order does not exist
            InvalidTransitionError: If the status is unknown or not reachable
        """
        target = self.state_machine.parse_status(new_status)
        order = await self._require_order(order_id)
        bind_order_context(order_id=str(order.id), tracking_id=order.tracking_id)

        previous = self.state_machine.apply_transition(order, target, approved_by=approved_by)
        order = await self.repository.update_status(order, expected_status=previous)

        if record_event is None:
            record_event = self.settings.ledger_event_on_transition
        if record_event:
            await self.ledger.append(
                order_id=order.id,
                tracking_id=order.tracking_id,
                status=TRANSITION_EVENTS[target],
                note=f"by {approved_by}" if approved_by else None,
            )

        return order

    async def record_tracking_event(
        self,
        order_id: uuid.UUID,
        status: str,
        location: Optional[str] = None,
        note: Optional[str] = None,
    ) -> TrackingEvent:
        """
        Append a tracking event to an existing order.

        Args:
            order_id: Order identifier
            status: Event label
            location: Optional location
            note: Optional note

        Returns:
            The stored event

        Raises:
            OrderNotFoundError: If the order does not exist
        """
        order = await self._require_order(order_id)
        return await self.ledger.append(
            order_id=order.id,
            tracking_id=order.tracking_id,
            status=status,
            location=location,
            note=note,
        )

    async def get_timeline(self, order_or_tracking_id: Union[str, uuid.UUID]) -> Sequence[TrackingEvent]:
        """
        Read the tracking history of an order, oldest first.

        A value that parses as a UUID is treated as an order id, anything else
        as a tracking code. An empty history is returned as an empty list.
        """
        order_id = _as_uuid(order_or_tracking_id)
        if order_id is not None:
            events = await self.ledger.list_for_order(order_id)
        else:
            events = await self.ledger.list_for_tracking_id(str(order_or_tracking_id).strip())

        if not events:
            logger.warning("Empty tracking timeline", reference=str(order_or_tracking_id))
        return events

    # Queries and administration

    async def get_order(self, order_id: uuid.UUID) -> Order:
        """Get an order or raise OrderNotFoundError."""
        return await self._require_order(order_id)

    async def get_order_by_tracking_id(self, tracking_id: str) -> Order:
        order = await self.repository.get_by_tracking_id(tracking_id)
        if order is None:
            raise OrderNotFoundError(tracking_id)
        return order

    async def list_orders(self, status: Optional[Union[str, OrderStatus]] = None) -> Sequence[Order]:
        if status is not None and not isinstance(status, OrderStatus):
            try:
                status = OrderStatus.from_string(status)
            except ValueError as e:
                raise InvalidInputError(str(e)) from e
        return await self.repository.list_by_status(status)

    async def list_buyer_orders(self, buyer_email: str) -> Sequence[Order]:
        if not buyer_email or not buyer_email.strip():
            raise InvalidInputError("Buyer email is required")
        return await self.repository.list_by_buyer_email(buyer_email.strip())

    async def update_order_fields(self, order_id: uuid.UUID, fields: dict[str, Any]) -> Order:
        """
        Apply an administrative patch to an order.

        Only buyer details, quantity, total price and approver can change
        here; status changes go through ``transition``.

        Args:
            order_id: Order identifier
            fields: Column values to change

        Returns:
            The updated order

        Raises:
            InvalidInputError: If a field is not editable or a value is invalid
            OrderNotFoundError: If the order does not exist
        """
        if not fields:
            raise InvalidInputError("No fields to update", order_id=str(order_id))
        if "status" in fields:
            raise InvalidInputError(
                "Status changes must use the status transition endpoint",
                order_id=str(order_id),
            )
        unknown = sorted(set(fields) - EDITABLE_ORDER_FIELDS)
        if unknown:
            raise InvalidInputError(
                f"Fields not editable: {', '.join(unknown)}",
                order_id=str(order_id),
            )
        cleared = sorted(key for key in REQUIRED_ORDER_FIELDS & set(fields) if fields[key] is None)
        if cleared:
            raise InvalidInputError(
                f"Fields cannot be null: {', '.join(cleared)}",
                order_id=str(order_id),
            )

        quantity = fields.get("quantity")
        if quantity is not None and quantity < 1:
            raise InvalidInputError("Quantity must be at least 1", order_id=str(order_id))
        total_price = fields.get("total_price")
        if total_price is not None and Decimal(total_price) < 0:
            raise InvalidInputError("Total price cannot be negative", order_id=str(order_id))
        for key in ("buyer_name", "buyer_email"):
            if key in fields and not (fields[key] or "").strip():
                raise InvalidInputError(f"{key} cannot be empty", order_id=str(order_id))

        order = await self._require_order(order_id)
        return await self.repository.update_fields(order, fields)

    async def cancel_order(self, order_id: uuid.UUID) -> None:
        """
        Remove an order on the buyer's request.

        The tracking history is kept.

        Raises:
            OrderNotFoundError: If the order does not exist
        """
        parsed = _as_uuid(order_id)
        if parsed is None or not await self.repository.remove(parsed):
            raise OrderNotFoundError(order_id)
        logger.info("Order cancelled by buyer", order_id=str(order_id))

    # Helpers

    async def _load_product(self, product_ref: Union[str, uuid.UUID, None]) -> Product:
        product_id = _as_uuid(product_ref)
        if product_id is None:
            raise ProductNotFoundError(product_ref)
        product = await self.catalog.get_product(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    async def _require_order(self, order_id: Union[str, uuid.UUID]) -> Order:
        parsed = _as_uuid(order_id)
        order = await self.repository.get_by_id(parsed) if parsed is not None else None
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def _after_insert(self, order: Order, event_status: str) -> None:
        bind_order_context(order_id=str(order.id), tracking_id=order.tracking_id)
        await self.inventory.decrement(order.product_id, order.quantity)
        await self.ledger.append(
            order_id=order.id,
            tracking_id=order.tracking_id,
            status=event_status,
        )
        logger.info(
            "Order created",
            order_id=str(order.id),
            tracking_id=order.tracking_id,
            payment_method=order.payment_method.value,
            quantity=order.quantity,
            total_price=str(order.total_price),
        )

    def _build_order(
        self,
        product: Product,
        buyer: BuyerInfo,
        quantity: int,
        payment_method: PaymentMethod,
        payment_status: PaymentStatus,
        transaction_id: Optional[str],
    ) -> Order:
        return Order(
            tracking_id=self._tracking_id_factory(),
            product_id=product.id,
            product_name=product.title,
            product_category=product.category,
            product_image=product.primary_image,
            unit_price=product.price,
            buyer_name=buyer.name,
            buyer_email=buyer.email,
            quantity=quantity,
            total_price=self._total_price(product.price, quantity),
            payment_method=payment_method,
            payment_status=payment_status,
            transaction_id=transaction_id,
            status=OrderStatus.PENDING,
        )

    @staticmethod
    def _total_price(unit_price: Decimal, quantity: int) -> Decimal:
        return (Decimal(unit_price) * quantity).quantize(Decimal("0.01"))


def _as_uuid(value: Union[str, uuid.UUID, None]) -> Optional[uuid.UUID]:
    if value is None or isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value).strip())
    except ValueError:
        return None
