"""
Payment confirmation gateway.

The order lifecycle only needs two things from the payment provider: turn a
checkout session reference into a confirmation it can trust, and start a new
checkout session for a product. This module defines that boundary and the
Stripe Checkout implementation behind it. Stripe SDK calls are blocking, so
they run in a worker thread.
"""

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional, Protocol

from src.core.config import Settings, get_settings
from src.core.exceptions import InvalidInputError, UpstreamUnavailableError
from src.core.logging import get_logger
from src.services.payments.stripe_client import (
    CHECKOUT_SESSION_PLACEHOLDER,
    StripeClient,
    StripeClientError,
    StripeInvalidRequestError,
    from_minor_units,
    to_minor_units,
)

logger = get_logger(__name__)

STATUS_COMPLETE = "complete"


@dataclass(frozen=True)
class PaymentConfirmation:
    """What the payment provider says about a checkout session."""

    session_ref: str
    status: str
    payment_reference: Optional[str]
    buyer_name: Optional[str]
    buyer_email: Optional[str]
    product_ref: Optional[str]
    amount_total: Optional[Decimal]

    @property
    def is_complete(self) -> bool:
        return self.status == STATUS_COMPLETE


@dataclass(frozen=True)
class CheckoutSession:
    """A hosted checkout page created for a buyer."""

    session_id: str
    url: str


class PaymentGateway(Protocol):
    """Boundary between the order lifecycle and the payment provider."""

    async def confirm_payment(self, session_ref: str) -> PaymentConfirmation:
        ...

    async def create_checkout_session(
        self,
        product: Any,
        buyer_email: str,
        buyer_name: Optional[str] = None,
    ) -> CheckoutSession:
        ...

    def parse_webhook_event(self, payload: bytes, signature: str) -> tuple[str, Optional[str]]:
        ...


class StripePaymentGateway:
    """
    Payment gateway backed by Stripe Checkout.

    Maps Stripe failures onto the domain error taxonomy: sessions Stripe does
    not know become InvalidInputError, everything else UpstreamUnavailableError.
    """

    def __init__(
        self,
        client: Optional[StripeClient] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize Stripe payment gateway.

        Args:
            client: Stripe client, created from settings if omitted
            settings: Application settings
        """
        self.settings = settings or get_settings()
        self.client = client or StripeClient(
            api_key=self.settings.stripe_secret_key,
            webhook_secret=self.settings.stripe_webhook_secret,
            max_retries=self.settings.stripe_max_retries,
        )

    async def confirm_payment(self, session_ref: str) -> PaymentConfirmation:
        """
        Fetch a checkout session and turn it into a confirmation.

        Args:
            session_ref: Stripe Checkout session ID

        Returns:
            Payment confirmation

        Raises:
            InvalidInputError: If the reference is empty or unknown to Stripe
            UpstreamUnavailableError: If Stripe cannot be reached
        """
        if not session_ref or not session_ref.strip():
            raise InvalidInputError("Checkout session reference is required")

        session = await self._call(
            "retrieve_checkout_session",
            self.client.retrieve_checkout_session,
            session_ref.strip(),
            session_ref=session_ref,
        )
        confirmation = self._to_confirmation(session_ref.strip(), session)

        logger.info(
            "Payment confirmation received",
            session_ref=confirmation.session_ref,
            status=confirmation.status,
            transaction_id=confirmation.payment_reference,
            product_id=confirmation.product_ref,
        )
        return confirmation

    async def create_checkout_session(
        self,
        product: Any,
        buyer_email: str,
        buyer_name: Optional[str] = None,
    ) -> CheckoutSession:
        """
        Start a hosted checkout for one unit of a product.

        The unit amount always comes from the catalog price.

        Args:
            product: Product being bought
            buyer_email: Buyer email
            buyer_name: Optional buyer name, stored in metadata

        Returns:
            Checkout session ID and redirect URL

        Raises:
            UpstreamUnavailableError: If Stripe cannot be reached
            InvalidInputError: If Stripe rejects the request
        """
        client_domain = self.settings.client_domain
        metadata = {
            "productId": str(product.id),
            "customer": buyer_email,
        }
        if buyer_name:
            metadata["customerName"] = buyer_name

        session = await self._call(
            "create_checkout_session",
            self.client.create_checkout_session,
            product_name=product.title,
            unit_amount=to_minor_units(product.price),
            customer_email=buyer_email,
            success_url=(
                f"{client_domain}/payment-success?session_id={CHECKOUT_SESSION_PLACEHOLDER}"
            ),
            cancel_url=f"{client_domain}/products/{product.id}",
            currency=self.settings.stripe_currency,
            description=product.description,
            images=list(product.images or []),
            metadata=metadata,
            product_id=str(product.id),
        )
        return CheckoutSession(session_id=session.id, url=session.url)

    def parse_webhook_event(self, payload: bytes, signature: str) -> tuple[str, Optional[str]]:
        """
        Verify a webhook delivery and extract the event type and session ID.

        Args:
            payload: Raw request body
            signature: ``Stripe-Signature`` header value

        Returns:
            Tuple of (event type, checkout session ID or None)

        Raises:
            InvalidInputError: If the payload or signature is invalid
        """
        try:
            event = self.client.construct_webhook_event(payload, signature)
        except StripeClientError as e:
            raise InvalidInputError(str(e), reason=e.code) from e

        data_object = _get(_get(event, "data"), "object")
        session_id = None
        if _get(data_object, "object") == "checkout.session":
            session_id = _get(data_object, "id")
        return _get(event, "type"), session_id

    async def _call(self, operation: str, func: Any, *args: Any, **kwargs: Any) -> Any:
        context = {
            key: kwargs.pop(key)
            for key in ("session_ref", "product_id")
            if key in kwargs
        }
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except StripeInvalidRequestError as e:
            raise InvalidInputError(
                str(e),
                operation=operation,
                stripe_code=e.code,
                **context,
            ) from e
        except StripeClientError as e:
            logger.error(
                "Payment provider unavailable",
                operation=operation,
                error=str(e),
                error_type=type(e).__name__,
                **context,
            )
            raise UpstreamUnavailableError(
                "Payment provider unavailable, retry with the same session reference",
                operation=operation,
                **context,
            ) from e

    @staticmethod
    def _to_confirmation(session_ref: str, session: Any) -> PaymentConfirmation:
        metadata = _get(session, "metadata") or {}
        details = _get(session, "customer_details") or {}
        buyer_email = (
            _get(details, "email")
            or _get(session, "customer_email")
            or _get(metadata, "customer")
        )
        buyer_name = _get(details, "name") or _get(metadata, "customerName")

        return PaymentConfirmation(
            session_ref=session_ref,
            status=_get(session, "status") or "incomplete",
            payment_reference=_get(session, "payment_intent"),
            buyer_name=buyer_name,
            buyer_email=buyer_email,
            product_ref=_get(metadata, "productId"),
            amount_total=from_minor_units(_get(session, "amount_total")),
        )


def _get(obj: Any, key: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)
