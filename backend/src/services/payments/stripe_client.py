"""
Stripe API client wrapper with error handling and retry logic.

This module wraps the Stripe Checkout Session API used by the storefront:
creating a hosted checkout session for a product and retrieving a session to
confirm that it was paid. Transport-level failures are retried with
exponential backoff; everything else is raised immediately as a
StripeClientError subclass.
"""

import time
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Optional

import stripe
from stripe import (
    APIConnectionError,
    APIError,
    AuthenticationError,
    IdempotencyError,
    InvalidRequestError,
    RateLimitError,
    SignatureVerificationError,
    StripeError,
)

from src.core.config import get_settings
from src.core.logging import get_logger

logger = get_logger(__name__)

CHECKOUT_SESSION_PLACEHOLDER = "{CHECKOUT_SESSION_ID}"


class StripeClientError(Exception):
    """Base exception for Stripe client errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        stripe_error: Optional[StripeError] = None,
        **context: Any,
    ):
        super().__init__(message)
        self.code = code
        self.stripe_error = stripe_error
        self.context = context


class StripeAuthenticationError(StripeClientError):
    """Exception for authentication errors."""

    pass


class StripeInvalidRequestError(StripeClientError):
    """Exception for requests Stripe rejected, such as unknown sessions."""

    pass


class StripeRateLimitError(StripeClientError):
    """Exception for rate limit errors."""

    pass


class StripeConnectionError(StripeClientError):
    """Exception for connection errors and exhausted retries."""

    pass


def to_minor_units(amount: Decimal) -> int:
    """Convert a decimal price to integer cents."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: Optional[int]) -> Optional[Decimal]:
    """Convert integer cents to a decimal price."""
    if amount is None:
        return None
    return (Decimal(amount) / Decimal(100)).quantize(Decimal("0.01"))


class StripeClient:
    """
    Stripe API client with error handling and retry logic.

    Calls are synchronous, like the Stripe SDK itself; async callers run them
    in a worker thread.
    """

    RETRYABLE_ERRORS = (APIConnectionError, RateLimitError, APIError)

    def __init__(
        self,
        api_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        max_retries: Optional[int] = None,
        initial_backoff: float = 1.0,
        max_backoff: float = 32.0,
        backoff_multiplier: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            api_key: Secret key, falls back to APP_STRIPE_SECRET_KEY
            webhook_secret: Webhook signing secret, falls back to settings
            max_retries: Extra attempts after a transient failure
            initial_backoff: Delay before the first retry, in seconds
            max_backoff: Upper bound for any single delay
            backoff_multiplier: Growth factor between delays
            sleep: Blocking wait used between attempts
        """
        settings = get_settings()
        self.api_key = api_key or settings.stripe_secret_key
        self.webhook_secret = webhook_secret or settings.stripe_webhook_secret
        self.max_retries = settings.stripe_max_retries if max_retries is None else max_retries
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self.backoff_multiplier = backoff_multiplier
        self._sleep = sleep

        stripe.api_key = self.api_key
        stripe.max_network_retries = 0

        logger.info(
            "Stripe client initialized",
            max_retries=self.max_retries,
            initial_backoff=initial_backoff,
            max_backoff=max_backoff,
        )

    def _calculate_backoff(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (0-based), capped at max_backoff."""
        return min(
            self.initial_backoff * (self.backoff_multiplier**attempt),
            self.max_backoff,
        )

    def _execute_with_retry(
        self,
        operation: str,
        func: Callable[..., Any],
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """
        Call a Stripe SDK function, retrying transient failures.

        Connection, rate limit and 5xx errors are retried up to max_retries
        times. Authentication and invalid requests fail on the first attempt.

        Raises:
            StripeClientError: Subclass matching the final failure
        """
        for attempt in range(self.max_retries + 1):
            try:
                result = func(*args, **kwargs)
                if attempt > 0:
                    logger.info(
                        f"Stripe operation succeeded after retry: {operation}",
                        attempt=attempt,
                    )
                return result

            except AuthenticationError as e:
                logger.error(
                    f"Stripe authentication error: {operation}",
                    error=str(e),
                    code=e.code,
                )
                raise StripeAuthenticationError(
                    f"Authentication failed: {e.user_message or str(e)}",
                    code=e.code,
                    stripe_error=e,
                ) from e

            except (InvalidRequestError, IdempotencyError) as e:
                logger.warning(
                    f"Stripe rejected request: {operation}",
                    error=str(e),
                    code=e.code,
                    param=getattr(e, "param", None),
                )
                raise StripeInvalidRequestError(
                    f"Invalid request: {e.user_message or str(e)}",
                    code=e.code,
                    stripe_error=e,
                    param=getattr(e, "param", None),
                ) from e

            except self.RETRYABLE_ERRORS as e:
                if attempt >= self.max_retries:
                    logger.error(
                        f"Stripe operation failed after all retries: {operation}",
                        error=str(e),
                        error_type=type(e).__name__,
                        max_retries=self.max_retries,
                    )
                    error_cls = (
                        StripeRateLimitError
                        if isinstance(e, RateLimitError)
                        else StripeConnectionError
                    )
                    raise error_cls(
                        f"Stripe unavailable after {attempt + 1} attempts: "
                        f"{e.user_message or str(e)}",
                        code=e.code,
                        stripe_error=e,
                    ) from e

                backoff = self._calculate_backoff(attempt)
                logger.warning(
                    f"Transient Stripe error, retrying: {operation}",
                    error_type=type(e).__name__,
                    attempt=attempt,
                    backoff_seconds=backoff,
                )
                self._sleep(backoff)

            except StripeError as e:
                logger.error(
                    f"Unexpected Stripe error: {operation}",
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise StripeClientError(
                    f"Stripe error: {e.user_message or str(e)}",
                    code=getattr(e, "code", None),
                    stripe_error=e,
                ) from e

        raise StripeConnectionError(f"Operation {operation} was not attempted")

    def create_checkout_session(
        self,
        product_name: str,
        unit_amount: int,
        customer_email: str,
        success_url: str,
        cancel_url: str,
        currency: str = "usd",
        description: Optional[str] = None,
        images: Optional[list[str]] = None,
        metadata: Optional[dict[str, str]] = None,
    ) -> stripe.checkout.Session:
        """
        Create a hosted Checkout session for a single unit of a product.

        Args:
            product_name: Name shown on the checkout page
            unit_amount: Price in cents
            customer_email: Buyer email, prefilled on the checkout page
            success_url: Redirect after payment, may contain the session placeholder
            cancel_url: Redirect when the buyer abandons checkout
            currency: Three-letter ISO currency code
            description: Optional product description
            images: Optional product image URLs
            metadata: Metadata copied onto the session

        Returns:
            Stripe Checkout Session object

        Raises:
            StripeClientError: If session creation fails
        """
        logger.info(
            "Creating checkout session",
            unit_amount=unit_amount,
            currency=currency,
        )

        product_data: dict[str, Any] = {"name": product_name}
        if description:
            product_data["description"] = description
        if images:
            product_data["images"] = images[:8]

        session = self._execute_with_retry(
            "create_checkout_session",
            stripe.checkout.Session.create,
            line_items=[
                {
                    "price_data": {
                        "currency": currency.lower(),
                        "product_data": product_data,
                        "unit_amount": unit_amount,
                    },
                    "quantity": 1,
                }
            ],
            customer_email=customer_email,
            mode="payment",
            metadata=metadata or {},
            success_url=success_url,
            cancel_url=cancel_url,
        )

        logger.info("Checkout session created", session_id=session.id)
        return session

    def retrieve_checkout_session(self, session_id: str) -> stripe.checkout.Session:
        """
        Retrieve a Checkout session by ID.

        Args:
            session_id: Stripe Checkout session ID

        Returns:
            Stripe Checkout Session object

        Raises:
            StripeClientError: If retrieval fails
        """
        logger.debug("Retrieving checkout session", session_id=session_id)

        session = self._execute_with_retry(
            "retrieve_checkout_session",
            stripe.checkout.Session.retrieve,
            session_id,
        )

        logger.debug(
            "Checkout session retrieved",
            session_id=session.id,
            status=session.status,
            payment_status=session.payment_status,
        )
        return session

    def construct_webhook_event(
        self,
        payload: bytes,
        signature: str,
    ) -> stripe.Event:
        """
        Construct and verify a webhook event from Stripe.

        Args:
            payload: Raw webhook payload bytes
            signature: Stripe signature header value

        Returns:
            Verified Stripe Event object

        Raises:
            StripeClientError: If webhook verification fails
        """
        try:
            event = stripe.Webhook.construct_event(
                payload,
                signature,
                self.webhook_secret,
            )
        except ValueError as e:
            logger.error("Invalid webhook payload", error=str(e))
            raise StripeClientError(
                "Invalid webhook payload",
                code="INVALID_PAYLOAD",
            ) from e
        except SignatureVerificationError as e:
            logger.error("Webhook signature verification failed", error=str(e))
            raise StripeClientError(
                "Webhook signature verification failed",
                code="INVALID_SIGNATURE",
                stripe_error=e,
            ) from e

        logger.info(
            "Webhook event verified successfully",
            event_id=event.id,
            event_type=event.type,
        )
        return event
