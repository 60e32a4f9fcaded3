"""
Payment API endpoints for Stripe Checkout.

This module implements FastAPI router endpoints for starting a hosted
checkout session and for receiving Stripe webhook deliveries. A completed
checkout delivered by webhook goes through the same idempotent order
creation as the buyer's success redirect, so whichever arrives second is
absorbed as a duplicate.
"""

from typing import Annotated

from fastapi import APIRouter, Header, Request, status

from src.api.deps import Catalog, Gateway, OrderService
from src.core.exceptions import ProductNotFoundError
from src.core.logging import get_logger
from src.core.rate_limit import checkout_rate_limit, limiter
from src.schemas.payments import (
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    WebhookAck,
)

logger = get_logger(__name__)

router = APIRouter()

CHECKOUT_COMPLETED = "checkout.session.completed"


@router.post(
    "/checkout-session",
    response_model=CheckoutSessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create checkout session",
    description="Start a Stripe Checkout for one unit of a product at its catalog price",
)
@limiter.limit(checkout_rate_limit)
async def create_checkout_session(
    request: Request,
    body: CheckoutSessionRequest,
    catalog: Catalog,
    gateway: Gateway,
) -> CheckoutSessionResponse:
    """
    Create a Stripe Checkout session.

    Args:
        request: FastAPI request object, used by the rate limiter
        body: Product and buyer
        catalog: Catalog repository
        gateway: Payment gateway

    Returns:
        CheckoutSessionResponse: Session ID and redirect URL

    Raises:
        ProductNotFoundError: 404 if the product does not exist
        UpstreamUnavailableError: 503 if Stripe cannot be reached
    """
    product = await catalog.get_product(body.product_id)
    if product is None:
        raise ProductNotFoundError(body.product_id)

    session = await gateway.create_checkout_session(
        product,
        buyer_email=body.customer_email,
        buyer_name=body.customer_name,
    )

    logger.info(
        "Checkout session started",
        product_id=str(product.id),
        session_id=session.session_id,
    )
    return CheckoutSessionResponse(session_id=session.session_id, url=session.url)


@router.post(
    "/webhook",
    response_model=WebhookAck,
    status_code=status.HTTP_200_OK,
    summary="Handle Stripe webhook",
    description="Verify a Stripe webhook and create the order for completed checkouts",
)
async def handle_webhook(
    request: Request,
    stripe_signature: Annotated[str, Header(alias="stripe-signature")],
    gateway: Gateway,
    service: OrderService,
) -> WebhookAck:
    """
    Handle a Stripe webhook delivery.

    Args:
        request: FastAPI request object
        stripe_signature: Stripe signature header
        gateway: Payment gateway used to verify the signature
        service: Order lifecycle service

    Returns:
        WebhookAck: Acknowledgement with the order outcome

    Raises:
        InvalidInputError: 400 for an invalid payload or signature
    """
    payload = await request.body()
    event_type, session_id = gateway.parse_webhook_event(payload, stripe_signature)

    logger.info("Received Stripe webhook", event_type=event_type, session_id=session_id)

    if event_type != CHECKOUT_COMPLETED or not session_id:
        return WebhookAck(event_type=event_type or "unknown", handled=False)

    result = await service.create_from_payment_confirmation(session_id)
    response = result.to_response()
    return WebhookAck(
        event_type=event_type,
        handled=True,
        tracking_id=response["tracking_id"],
        duplicate=result.duplicate,
    )
