"""
Integration tests for order API endpoints.

Tests cover card payment confirmation, cash-on-delivery orders, listings,
approval transitions, administrative updates, removal and tracking timelines,
including the HTTP status mapping of domain errors.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from fastapi import status
from httpx import AsyncClient

ORDERS = "/api/v1/orders"


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
async def product(product_factory):
    """Create a product priced at 20.00 with five units in stock."""
    return await product_factory(
        title="Cotton Kurta",
        price=Decimal("20.00"),
        available_quantity=5,
    )


@pytest.fixture
def cod_payload(product) -> dict:
    """Cash-on-delivery request for two units."""
    return {
        "product_id": str(product.id),
        "quantity": 2,
        "buyer": {"name": "Rahim", "email": "rahim@example.com"},
    }


async def place_cod_order(client: AsyncClient, payload: dict) -> dict:
    response = await client.post(f"{ORDERS}/cod", json=payload)
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()


# ============================================================================
# Payment Confirmation Tests
# ============================================================================


class TestPaymentSuccess:
    """Test POST /orders/payment-success."""

    async def test_creates_order_once(self, async_client, product, fake_gateway, read_stock):
        fake_gateway.add_confirmation("cs_api_1", product.id, payment_reference="pi_api_1")

        first = await async_client.post(
            f"{ORDERS}/payment-success", json={"session_id": "cs_api_1"}
        )
        second = await async_client.post(
            f"{ORDERS}/payment-success", json={"session_id": "cs_api_1"}
        )

        assert first.status_code == status.HTTP_201_CREATED
        created = first.json()
        assert created["success"] is True
        assert created["duplicate"] is False
        assert created["transaction_id"] == "pi_api_1"

        assert second.status_code == status.HTTP_200_OK
        duplicate = second.json()
        assert duplicate["success"] is False
        assert duplicate["duplicate"] is True
        assert duplicate["order_id"] == created["order_id"]
        assert duplicate["tracking_id"] == created["tracking_id"]

        assert await read_stock(product.id) == 4
        timeline = await async_client.get(f"{ORDERS}/{created['order_id']}/timeline")
        assert [e["status"] for e in timeline.json()["events"]] == ["Order Created"]

    async def test_incomplete_payment(self, async_client, product, fake_gateway):
        fake_gateway.add_confirmation(
            "cs_open", product.id, payment_reference=None, status="open"
        )

        response = await async_client.post(
            f"{ORDERS}/payment-success", json={"session_id": "cs_open"}
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["success"] is False
        assert data["duplicate"] is False
        assert data["order_id"] is None

    async def test_unknown_session(self, async_client):
        response = await async_client.post(
            f"{ORDERS}/payment-success", json={"session_id": "cs_unknown"}
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["code"] == "INVALID_INPUT"

    async def test_gateway_unavailable(self, async_client, fake_gateway):
        fake_gateway.unavailable = True

        response = await async_client.post(
            f"{ORDERS}/payment-success", json={"session_id": "cs_any"}
        )

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        body = response.json()
        assert body["error"] == "UPSTREAM_UNAVAILABLE"
        assert "request_id" in body

    async def test_deleted_product(self, async_client, fake_gateway):
        fake_gateway.add_confirmation("cs_gone", uuid4(), payment_reference="pi_gone")

        response = await async_client.post(
            f"{ORDERS}/payment-success", json={"session_id": "cs_gone"}
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["code"] == "PRODUCT_NOT_FOUND"

    async def test_missing_session_id(self, async_client):
        response = await async_client.post(f"{ORDERS}/payment-success", json={})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


# ============================================================================
# Cash on Delivery Tests
# ============================================================================


class TestCashOnDelivery:
    """Test POST /orders/cod."""

    async def test_create_cod_order(self, async_client, cod_payload, product, read_stock):
        order = await place_cod_order(async_client, cod_payload)

        assert Decimal(order["total_price"]) == Decimal("40.00")
        assert order["quantity"] == 2
        assert order["payment_method"] == "cash_on_delivery"
        assert order["payment_status"] == "cod"
        assert order["status"] == "pending"
        assert order["transaction_id"] is None
        assert order["product_name"] == "Cotton Kurta"
        assert await read_stock(product.id) == 3

        timeline = await async_client.get(f"{ORDERS}/{order['tracking_id']}/timeline")
        events = timeline.json()["events"]
        assert len(events) == 1
        assert events[0]["status"] == "Order Created (COD)"

    async def test_each_request_creates_new_order(self, async_client, cod_payload):
        first = await place_cod_order(async_client, cod_payload)
        second = await place_cod_order(async_client, cod_payload)

        assert first["id"] != second["id"]
        assert first["tracking_id"] != second["tracking_id"]

    async def test_missing_quantity_defaults_to_one(self, async_client, cod_payload):
        cod_payload.pop("quantity")

        order = await place_cod_order(async_client, cod_payload)

        assert order["quantity"] == 1
        assert Decimal(order["total_price"]) == Decimal("20.00")

    async def test_unknown_product(self, async_client, cod_payload):
        cod_payload["product_id"] = str(uuid4())

        response = await async_client.post(f"{ORDERS}/cod", json=cod_payload)

        assert response.status_code == status.HTTP_404_NOT_FOUND

    async def test_invalid_buyer_email(self, async_client, cod_payload):
        cod_payload["buyer"]["email"] = "not-an-email"

        response = await async_client.post(f"{ORDERS}/cod", json=cod_payload)

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


# ============================================================================
# Query Tests
# ============================================================================


class TestOrderQueries:
    async def test_get_order(self, async_client, cod_payload):
        order = await place_cod_order(async_client, cod_payload)

        by_id = await async_client.get(f"{ORDERS}/{order['id']}")
        by_tracking = await async_client.get(f"{ORDERS}/track/{order['tracking_id']}")

        assert by_id.status_code == status.HTTP_200_OK
        assert by_id.json()["id"] == order["id"]
        assert by_tracking.json()["id"] == order["id"]

    async def test_get_missing_order(self, async_client):
        response = await async_client.get(f"{ORDERS}/{uuid4()}")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["code"] == "ORDER_NOT_FOUND"

    async def test_list_by_status_and_buyer(self, async_client, cod_payload):
        first = await place_cod_order(async_client, cod_payload)
        await place_cod_order(async_client, cod_payload)
        await async_client.patch(f"{ORDERS}/{first['id']}/status", json={"status": "approved"})

        approved = await async_client.get(ORDERS, params={"status": "approved"})
        everything = await async_client.get(ORDERS)
        mine = await async_client.get(f"{ORDERS}/buyer/rahim@example.com")

        assert [o["id"] for o in approved.json()] == [first["id"]]
        assert len(everything.json()) == 2
        assert len(mine.json()) == 2

    async def test_list_invalid_status(self, async_client):
        response = await async_client.get(ORDERS, params={"status": "shipped"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST


# ============================================================================
# Status Transition Tests
# ============================================================================


class TestStatusTransitions:
    """Test PATCH /orders/{id}/status."""

    async def test_approve(self, async_client, cod_payload):
        order = await place_cod_order(async_client, cod_payload)

        response = await async_client.patch(
            f"{ORDERS}/{order['id']}/status",
            json={"status": "approved", "approved_by": "manager@example.com"},
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "approved"
        assert data["approved_by"] == "manager@example.com"
        assert data["approved_at"] is not None

    async def test_terminal_status_conflict(self, async_client, cod_payload):
        order = await place_cod_order(async_client, cod_payload)
        await async_client.patch(f"{ORDERS}/{order['id']}/status", json={"status": "rejected"})

        response = await async_client.patch(
            f"{ORDERS}/{order['id']}/status", json={"status": "approved"}
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["code"] == "INVALID_TRANSITION"
        current = await async_client.get(f"{ORDERS}/{order['id']}")
        assert current.json()["status"] == "rejected"
        assert current.json()["approved_at"] is None

    async def test_unknown_status_conflict(self, async_client, cod_payload):
        order = await place_cod_order(async_client, cod_payload)

        response = await async_client.patch(
            f"{ORDERS}/{order['id']}/status", json={"status": "shipped"}
        )

        assert response.status_code == status.HTTP_409_CONFLICT

    async def test_missing_order(self, async_client):
        response = await async_client.patch(
            f"{ORDERS}/{uuid4()}/status", json={"status": "approved"}
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    async def test_record_event_flag(self, async_client, cod_payload):
        order = await place_cod_order(async_client, cod_payload)

        await async_client.patch(
            f"{ORDERS}/{order['id']}/status",
            json={"status": "approved", "approved_by": "Karim", "record_event": True},
        )
        timeline = await async_client.get(f"{ORDERS}/{order['id']}/timeline")

        events = timeline.json()["events"]
        assert [e["status"] for e in events] == ["Order Created (COD)", "Order Approved"]
        assert events[1]["note"] == "by Karim"


# ============================================================================
# Update and Removal Tests
# ============================================================================


class TestUpdateAndRemove:
    async def test_patch_fields(self, async_client, cod_payload):
        order = await place_cod_order(async_client, cod_payload)

        response = await async_client.patch(
            f"{ORDERS}/{order['id']}",
            json={"quantity": 3, "buyer_name": "Rahim Uddin"},
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["quantity"] == 3
        assert response.json()["buyer_name"] == "Rahim Uddin"

    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"status": "approved"},
            {"quantity": 0},
            {"quantity": None},
            {"total_price": None},
            {"buyer_name": None},
        ],
    )
    async def test_patch_rejects_invalid_bodies(self, async_client, cod_payload, body):
        order = await place_cod_order(async_client, cod_payload)

        response = await async_client.patch(f"{ORDERS}/{order['id']}", json=body)

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    async def test_null_patch_leaves_order_unchanged(self, async_client, cod_payload):
        order = await place_cod_order(async_client, cod_payload)

        response = await async_client.patch(f"{ORDERS}/{order['id']}", json={"quantity": None})
        fetched = await async_client.get(f"{ORDERS}/{order['id']}")

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert fetched.json()["quantity"] == order["quantity"]

    async def test_delete_keeps_timeline(self, async_client, cod_payload):
        order = await place_cod_order(async_client, cod_payload)

        response = await async_client.delete(f"{ORDERS}/{order['id']}")
        missing = await async_client.get(f"{ORDERS}/{order['id']}")
        timeline = await async_client.get(f"{ORDERS}/{order['tracking_id']}/timeline")

        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert missing.status_code == status.HTTP_404_NOT_FOUND
        assert len(timeline.json()["events"]) == 1

    async def test_delete_missing(self, async_client):
        response = await async_client.delete(f"{ORDERS}/{uuid4()}")

        assert response.status_code == status.HTTP_404_NOT_FOUND


# ============================================================================
# Tracking Tests
# ============================================================================


class TestTracking:
    async def test_record_and_read_timeline(self, async_client, cod_payload):
        order = await place_cod_order(async_client, cod_payload)

        created = await async_client.post(
            f"{ORDERS}/{order['id']}/tracking",
            json={"status": "Shipped", "location": "Dhaka Hub", "note": "Courier picked up"},
        )
        timeline = await async_client.get(f"{ORDERS}/{order['id']}/timeline")

        assert created.status_code == status.HTTP_201_CREATED
        assert created.json()["tracking_id"] == order["tracking_id"]
        statuses = [e["status"] for e in timeline.json()["events"]]
        assert statuses == ["Order Created (COD)", "Shipped"]

    async def test_tracking_event_for_missing_order(self, async_client):
        response = await async_client.post(
            f"{ORDERS}/{uuid4()}/tracking", json={"status": "Shipped"}
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    async def test_unknown_reference_has_empty_timeline(self, async_client):
        response = await async_client.get(f"{ORDERS}/ORD-20990101-FFFFFF/timeline")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"reference": "ORD-20990101-FFFFFF", "events": []}
