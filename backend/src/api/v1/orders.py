"""
Order lifecycle API endpoints.

This module implements the FastAPI router for placing orders (card checkout
confirmation and cash on delivery), reading them, approving or rejecting
them, administrative patches, buyer removal, and tracking events and
timelines. Domain errors propagate to the application exception handlers,
which map them to HTTP status codes.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, Request, Response, status

from src.api.deps import OrderService
from src.core.logging import get_logger
from src.core.rate_limit import checkout_rate_limit, limiter
from src.schemas.orders import (
    CashOnDeliveryRequest,
    OrderResponse,
    OrderStatusUpdate,
    OrderUpdateRequest,
    PaymentConfirmationResponse,
    PaymentSuccessRequest,
    TimelineResponse,
    TrackingEventRequest,
    TrackingEventResponse,
)
from src.services.orders.service import BuyerInfo

logger = get_logger(__name__)

router = APIRouter()


@router.post(
    "/payment-success",
    response_model=PaymentConfirmationResponse,
    summary="Confirm card payment",
    description="Create the order for a completed checkout session; repeat calls are idempotent",
)
@limiter.limit(checkout_rate_limit)
async def confirm_payment(
    request: Request,
    response: Response,
    body: PaymentSuccessRequest,
    service: OrderService,
) -> PaymentConfirmationResponse:
    """
    Create an order from a checkout session.

    Returns 201 when a new order was created and 200 for duplicates and
    unpaid sessions, with ``success`` and ``duplicate`` telling them apart.
    """
    logger.info("Confirming checkout session", session_ref=body.session_id)

    result = await service.create_from_payment_confirmation(body.session_id)
    if result.success:
        response.status_code = status.HTTP_201_CREATED

    return PaymentConfirmationResponse(**result.to_response())


@router.post(
    "/cod",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Place cash-on-delivery order",
)
async def create_cod_order(
    body: CashOnDeliveryRequest,
    service: OrderService,
) -> OrderResponse:
    """
    Place a cash-on-delivery order.

    Args:
        body: Product, quantity and buyer
        service: Order lifecycle service

    Returns:
        OrderResponse: Created order
    """
    logger.info(
        "Creating cash-on-delivery order",
        product_id=str(body.product_id),
        quantity=body.quantity,
    )

    order = await service.create_cash_on_delivery(
        product_id=body.product_id,
        quantity=body.quantity,
        buyer=BuyerInfo(name=body.buyer.name, email=body.buyer.email),
    )
    return OrderResponse.model_validate(order)


@router.get(
    "",
    response_model=list[OrderResponse],
    summary="List orders",
    description="List all orders for managers, newest first",
)
async def list_orders(
    service: OrderService,
    status_filter: Optional[str] = Query(
        None,
        alias="status",
        description="Filter by order status",
    ),
) -> list[OrderResponse]:
    orders = await service.list_orders(status_filter)
    return [OrderResponse.model_validate(order) for order in orders]


@router.get(
    "/buyer/{email}",
    response_model=list[OrderResponse],
    summary="List a buyer's orders",
)
async def list_buyer_orders(email: str, service: OrderService) -> list[OrderResponse]:
    orders = await service.list_buyer_orders(email)
    return [OrderResponse.model_validate(order) for order in orders]


@router.get(
    "/track/{tracking_id}",
    response_model=OrderResponse,
    summary="Look up order by tracking code",
)
async def get_order_by_tracking_id(tracking_id: str, service: OrderService) -> OrderResponse:
    order = await service.get_order_by_tracking_id(tracking_id)
    return OrderResponse.model_validate(order)


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order",
)
async def get_order(order_id: UUID, service: OrderService) -> OrderResponse:
    order = await service.get_order(order_id)
    return OrderResponse.model_validate(order)


@router.patch(
    "/{order_id}/status",
    response_model=OrderResponse,
    summary="Approve or reject order",
    description="Move a pending order to approved or rejected; both are final",
)
async def update_order_status(
    order_id: UUID,
    body: OrderStatusUpdate,
    service: OrderService,
) -> OrderResponse:
    """
    Approve or reject an order.

    Args:
        order_id: Order identifier
        body: Target status and approver
        service: Order lifecycle service

    Returns:
        OrderResponse: Updated order

    Raises:
        InvalidTransitionError: 409 if the status is unknown or unreachable
        OrderNotFoundError: 404 if the order does not exist
    """
    logger.info(
        "Updating order status",
        order_id=str(order_id),
        new_status=body.status,
        approved_by=body.approved_by,
    )

    order = await service.transition(
        order_id,
        body.status,
        approved_by=body.approved_by,
        record_event=body.record_event,
    )
    return OrderResponse.model_validate(order)


@router.patch(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Update order fields",
)
async def update_order(
    order_id: UUID,
    body: OrderUpdateRequest,
    service: OrderService,
) -> OrderResponse:
    logger.info(
        "Updating order fields",
        order_id=str(order_id),
        fields=sorted(body.model_fields_set),
    )
    order = await service.update_order_fields(order_id, body.changes())
    return OrderResponse.model_validate(order)


@router.delete(
    "/{order_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove order",
    description="Remove an order at the buyer's request; its tracking history is kept",
)
async def delete_order(order_id: UUID, service: OrderService) -> Response:
    await service.cancel_order(order_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{order_id}/tracking",
    response_model=TrackingEventResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record tracking event",
)
async def record_tracking_event(
    order_id: UUID,
    body: TrackingEventRequest,
    service: OrderService,
) -> TrackingEventResponse:
    event = await service.record_tracking_event(
        order_id,
        status=body.status,
        location=body.location,
        note=body.note,
    )
    return TrackingEventResponse.model_validate(event)


@router.get(
    "/{reference}/timeline",
    response_model=TimelineResponse,
    summary="Get tracking timeline",
    description="Tracking history by order id or tracking code, oldest first",
)
async def get_timeline(reference: str, service: OrderService) -> TimelineResponse:
    events = await service.get_timeline(reference)
    return TimelineResponse(
        reference=reference,
        events=[TrackingEventResponse.model_validate(event) for event in events],
    )
