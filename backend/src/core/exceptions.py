"""
Domain error taxonomy for the order lifecycle.

Every error carries a human readable message, a stable machine code and
free-form context for structured logging. The HTTP layer maps each class to
a status code; services raise them and never return error values, except for
duplicate payment confirmations which are reported as a normal result.
"""

from typing import Any, Optional


class FulfillmentError(Exception):
    """Base exception for order fulfillment errors."""

    code = "FULFILLMENT_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, **context: Any):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        """Serialize error for API responses."""
        return {
            "code": self.code,
            "message": self.message,
            "context": {key: str(value) for key, value in self.context.items()},
        }


class NotFoundError(FulfillmentError):
    """Raised when a referenced entity does not exist."""

    code = "NOT_FOUND"


class ProductNotFoundError(NotFoundError):
    """Raised when a referenced product no longer exists."""

    code = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: Any):
        super().__init__(
            f"Product {product_id} not found",
            product_id=product_id,
        )


class OrderNotFoundError(NotFoundError):
    """Raised when an order cannot be found."""

    code = "ORDER_NOT_FOUND"

    def __init__(self, order_id: Any):
        super().__init__(
            f"Order {order_id} not found",
            order_id=order_id,
        )


class InvalidInputError(FulfillmentError):
    """Raised for missing buyer fields, bad quantities or unknown references."""

    code = "INVALID_INPUT"


class InvalidTransitionError(FulfillmentError):
    """Raised when a status change is not allowed by the order state machine."""

    code = "INVALID_TRANSITION"

    def __init__(self, message: str, current_status: Any, target_status: Any, **context: Any):
        super().__init__(
            message,
            current_status=current_status,
            target_status=target_status,
            **context,
        )
        self.current_status = current_status
        self.target_status = target_status


class InsufficientInventoryError(FulfillmentError):
    """Raised when the stock floor is enforced and a decrement would cross it."""

    code = "INSUFFICIENT_INVENTORY"

    def __init__(self, product_id: Any, requested: int):
        super().__init__(
            f"Insufficient inventory for product {product_id}",
            product_id=product_id,
            requested=requested,
        )


class UpstreamUnavailableError(FulfillmentError):
    """Raised when the payment gateway cannot be reached; safe to retry."""

    code = "UPSTREAM_UNAVAILABLE"


class RepositoryError(FulfillmentError):
    """Raised when a storage operation fails unexpectedly."""

    code = "REPOSITORY_ERROR"
