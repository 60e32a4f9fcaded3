"""
Test suite for the FastAPI application.

Tests cover health endpoints, the request ID middleware, the mapping of
domain errors to HTTP responses and the generic error handlers.
"""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi import status
from httpx import ASGITransport, AsyncClient

from src.api.deps import get_order_service
from src.core.exceptions import (
    FulfillmentError,
    InsufficientInventoryError,
    InvalidInputError,
    InvalidTransitionError,
    OrderNotFoundError,
    ProductNotFoundError,
    RepositoryError,
    UpstreamUnavailableError,
)
from src.main import app, run, status_code_for


# ============================================================================
# Health Endpoints
# ============================================================================


class TestHealthEndpoints:
    """Test suite for health, readiness and liveness endpoints."""

    async def test_health_check(self, async_client):
        response = await async_client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "healthy"
        assert data["environment"] == "test"
        assert {"service", "version"} <= data.keys()

    async def test_liveness_check(self, async_client):
        response = await async_client.get("/live")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "alive"

    async def test_readiness_when_database_up(self, async_client):
        with patch("src.main.check_database_health", AsyncMock(return_value=True)):
            response = await async_client.get("/ready")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["dependencies_ready"] is True

    async def test_readiness_when_database_down(self, async_client):
        with patch("src.main.check_database_health", AsyncMock(return_value=False)):
            response = await async_client.get("/ready")

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.json()["database"] == "unhealthy"


# ============================================================================
# Middleware
# ============================================================================


class TestRequestIdMiddleware:
    async def test_generates_request_id(self, async_client):
        response = await async_client.get("/health")

        assert response.headers["X-Request-ID"]

    async def test_propagates_request_id(self, async_client):
        response = await async_client.get("/health", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"

    async def test_error_body_carries_request_id(self, async_client):
        response = await async_client.get(
            "/api/v1/orders/track/ORD-MISSING", headers={"X-Request-ID": "req-404"}
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["request_id"] == "req-404"


# ============================================================================
# Error Mapping
# ============================================================================


class TestErrorMapping:
    @pytest.mark.parametrize(
        "error,expected",
        [
            (OrderNotFoundError("o-1"), status.HTTP_404_NOT_FOUND),
            (ProductNotFoundError("p-1"), status.HTTP_404_NOT_FOUND),
            (InvalidInputError("bad"), status.HTTP_400_BAD_REQUEST),
            (
                InvalidTransitionError("no", current_status="approved", target_status="pending"),
                status.HTTP_409_CONFLICT,
            ),
            (InsufficientInventoryError("p-1", 3), status.HTTP_409_CONFLICT),
            (UpstreamUnavailableError("down"), status.HTTP_503_SERVICE_UNAVAILABLE),
            (RepositoryError("db"), status.HTTP_500_INTERNAL_SERVER_ERROR),
            (FulfillmentError("generic"), status.HTTP_500_INTERNAL_SERVER_ERROR),
        ],
    )
    def test_status_code_for(self, error, expected):
        assert status_code_for(error) == expected

    def test_error_serialization(self):
        error = InsufficientInventoryError("p-1", 3)

        assert error.to_dict() == {
            "code": "INSUFFICIENT_INVENTORY",
            "message": "Insufficient inventory for product p-1",
            "context": {"product_id": "p-1", "requested": "3"},
        }

    async def test_validation_error_shape(self, async_client):
        response = await async_client.post("/api/v1/orders/cod", json={"quantity": 1})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        body = response.json()
        assert body["error"] == "Validation Error"
        assert body["details"]


class TestUnhandledErrors:
    async def test_unexpected_exception_returns_500(self, async_client):
        """Test unexpected failures are reported without internal details."""

        def broken_service():
            raise RuntimeError("boom")

        app.dependency_overrides[get_order_service] = broken_service
        transport = ASGITransport(app=app, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/api/v1/orders")

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.json()["message"] == "An unexpected error occurred"
        assert "boom" not in response.text


class TestRunner:
    def test_run_serves_app_with_uvicorn(self):
        with patch("src.main.uvicorn.run") as uvicorn_run:
            run()

        uvicorn_run.assert_called_once()
        args, kwargs = uvicorn_run.call_args
        assert args == ("src.main:app",)
        assert kwargs["port"] == 8000
        assert kwargs["reload"] is False
