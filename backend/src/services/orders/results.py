"""Outcomes of creating an order from a payment confirmation.

A confirmation either creates an order, maps onto an order that already
exists for the same payment reference, or refers to a payment that has not
completed. Only the first is a success; none of them is an error.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Union

from src.database.models.order import Order


@dataclass(frozen=True)
class OrderCreated:
    """A new order was created for the confirmation."""

    order: Order
    success: bool = field(default=True, init=False)
    duplicate: bool = field(default=False, init=False)

    def to_response(self) -> dict[str, Any]:
        return {
            "success": True,
            "duplicate": False,
            "order_id": str(self.order.id),
            "tracking_id": self.order.tracking_id,
            "transaction_id": self.order.transaction_id,
            "message": "Order created",
        }


@dataclass(frozen=True)
class OrderAlreadyExists:
    """The payment reference was already turned into an order."""

    order: Order
    success: bool = field(default=False, init=False)
    duplicate: bool = field(default=True, init=False)

    def to_response(self) -> dict[str, Any]:
        return {
            "success": False,
            "duplicate": True,
            "order_id": str(self.order.id),
            "tracking_id": self.order.tracking_id,
            "transaction_id": self.order.transaction_id,
            "message": "Order already exists for this payment",
        }


@dataclass(frozen=True)
class PaymentNotComplete:
    """The checkout session has not been paid."""

    session_ref: str
    payment_status: str
    transaction_id: Optional[str] = None
    success: bool = field(default=False, init=False)
    duplicate: bool = field(default=False, init=False)

    def to_response(self) -> dict[str, Any]:
        return {
            "success": False,
            "duplicate": False,
            "order_id": None,
            "tracking_id": None,
            "transaction_id": self.transaction_id,
            "message": f"Payment not complete (status: {self.payment_status})",
        }


ConfirmationResult = Union[OrderCreated, OrderAlreadyExists, PaymentNotComplete]
