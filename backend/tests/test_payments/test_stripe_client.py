"""
Comprehensive tests for Stripe client integration.

Tests cover checkout session creation and retrieval, retry logic with
exponential backoff, error mapping and webhook verification. All Stripe API
calls are mocked.
"""

from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
import stripe

from src.services.payments.stripe_client import (
    CHECKOUT_SESSION_PLACEHOLDER,
    StripeAuthenticationError,
    StripeClient,
    StripeClientError,
    StripeConnectionError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    from_minor_units,
    to_minor_units,
)


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def sleeps() -> list:
    """Backoff delays requested by the client."""
    return []


@pytest.fixture
def stripe_client(sleeps) -> StripeClient:
    """
    Create Stripe client instance for testing.

    Returns:
        StripeClient configured with test credentials and a recording sleep
    """
    return StripeClient(
        api_key="sk_test_fake_key",
        webhook_secret="whsec_test_secret",
        max_retries=3,
        initial_backoff=0.1,
        max_backoff=1.0,
        backoff_multiplier=2.0,
        sleep=sleeps.append,
    )


@pytest.fixture
def mock_checkout_session() -> MagicMock:
    """
    Create mock Stripe Checkout Session.

    Returns:
        Mock session with common attributes
    """
    session = MagicMock()
    session.id = "cs_test_123"
    session.url = "https://checkout.stripe.com/c/pay/cs_test_123"
    session.status = "complete"
    session.payment_status = "paid"
    session.payment_intent = "pi_test_123"
    return session


def create_checkout(client: StripeClient):
    return client.create_checkout_session(
        product_name="Linen Shirt",
        unit_amount=2000,
        customer_email="buyer@example.com",
        success_url=f"http://shop.test/payment-success?session_id={CHECKOUT_SESSION_PLACEHOLDER}",
        cancel_url="http://shop.test/products/1",
        description="Breathable linen",
        images=["https://img.example.com/shirt.jpg"],
        metadata={"productId": "1", "customer": "buyer@example.com"},
    )


# ============================================================================
# Amount Conversion Tests
# ============================================================================


class TestAmountConversion:
    @pytest.mark.parametrize(
        "amount,expected",
        [(Decimal("20.00"), 2000), (Decimal("45.5"), 4550), (Decimal("0.015"), 2)],
    )
    def test_to_minor_units(self, amount, expected):
        assert to_minor_units(amount) == expected

    def test_from_minor_units(self):
        assert from_minor_units(4550) == Decimal("45.50")
        assert from_minor_units(None) is None


# ============================================================================
# Initialization Tests
# ============================================================================


class TestStripeClientInitialization:
    def test_initialization_with_custom_config(self, stripe_client):
        assert stripe_client.api_key == "sk_test_fake_key"
        assert stripe_client.webhook_secret == "whsec_test_secret"
        assert stripe_client.max_retries == 3
        assert stripe.api_key == "sk_test_fake_key"

    def test_calculate_backoff(self, stripe_client):
        """Test exponential backoff is capped at max_backoff."""
        assert stripe_client._calculate_backoff(0) == pytest.approx(0.1)
        assert stripe_client._calculate_backoff(1) == pytest.approx(0.2)
        assert stripe_client._calculate_backoff(10) == pytest.approx(1.0)


# ============================================================================
# Checkout Session Tests
# ============================================================================


class TestCreateCheckoutSession:
    def test_create_success(self, stripe_client, mock_checkout_session):
        with patch("stripe.checkout.Session.create", return_value=mock_checkout_session) as create:
            session = create_checkout(stripe_client)

        assert session.id == "cs_test_123"
        kwargs = create.call_args.kwargs
        assert kwargs["mode"] == "payment"
        assert kwargs["customer_email"] == "buyer@example.com"
        assert kwargs["metadata"]["productId"] == "1"
        line_item = kwargs["line_items"][0]
        assert line_item["quantity"] == 1
        assert line_item["price_data"]["unit_amount"] == 2000
        assert line_item["price_data"]["currency"] == "usd"
        assert line_item["price_data"]["product_data"]["name"] == "Linen Shirt"
        assert kwargs["success_url"].endswith("session_id={CHECKOUT_SESSION_ID}")

    def test_retries_connection_errors(self, stripe_client, mock_checkout_session, sleeps):
        """Test transient failures are retried with growing delays."""
        with patch(
            "stripe.checkout.Session.create",
            side_effect=[
                stripe.APIConnectionError("Network error"),
                stripe.APIConnectionError("Network error"),
                mock_checkout_session,
            ],
        ) as create:
            session = create_checkout(stripe_client)

        assert session is mock_checkout_session
        assert create.call_count == 3
        assert sleeps == pytest.approx([0.1, 0.2])

    def test_retries_exhausted(self, stripe_client, sleeps):
        with patch(
            "stripe.checkout.Session.create",
            side_effect=stripe.APIConnectionError("Network error"),
        ) as create:
            with pytest.raises(StripeConnectionError, match="after 4 attempts"):
                create_checkout(stripe_client)

        assert create.call_count == 4
        assert len(sleeps) == 3

    def test_rate_limit_exhausted(self, stripe_client):
        with patch(
            "stripe.checkout.Session.create",
            side_effect=stripe.RateLimitError("Too many requests"),
        ):
            with pytest.raises(StripeRateLimitError):
                create_checkout(stripe_client)

    def test_authentication_error_not_retried(self, stripe_client, sleeps):
        with patch(
            "stripe.checkout.Session.create",
            side_effect=stripe.AuthenticationError("Invalid API key"),
        ) as create:
            with pytest.raises(StripeAuthenticationError):
                create_checkout(stripe_client)

        assert create.call_count == 1
        assert sleeps == []

    def test_invalid_request_not_retried(self, stripe_client):
        with patch(
            "stripe.checkout.Session.create",
            side_effect=stripe.InvalidRequestError("Bad amount", param="unit_amount"),
        ) as create:
            with pytest.raises(StripeInvalidRequestError) as exc_info:
                create_checkout(stripe_client)

        assert create.call_count == 1
        assert exc_info.value.context["param"] == "unit_amount"

    def test_other_stripe_error(self, stripe_client):
        with patch(
            "stripe.checkout.Session.create",
            side_effect=stripe.PermissionError("Not allowed"),
        ):
            with pytest.raises(StripeClientError):
                create_checkout(stripe_client)


class TestRetrieveCheckoutSession:
    def test_retrieve_success(self, stripe_client, mock_checkout_session):
        with patch(
            "stripe.checkout.Session.retrieve", return_value=mock_checkout_session
        ) as retrieve:
            session = stripe_client.retrieve_checkout_session("cs_test_123")

        retrieve.assert_called_once_with("cs_test_123")
        assert session.payment_intent == "pi_test_123"

    def test_retrieve_unknown_session(self, stripe_client):
        with patch(
            "stripe.checkout.Session.retrieve",
            side_effect=stripe.InvalidRequestError("No such checkout.session", param="id"),
        ):
            with pytest.raises(StripeInvalidRequestError):
                stripe_client.retrieve_checkout_session("cs_missing")


# ============================================================================
# Webhook Tests
# ============================================================================


class TestConstructWebhookEvent:
    def test_valid_event(self, stripe_client):
        event = MagicMock()
        event.id = "evt_123"
        event.type = "checkout.session.completed"

        with patch("stripe.Webhook.construct_event", return_value=event) as construct:
            result = stripe_client.construct_webhook_event(b"{}", "t=1,v1=sig")

        construct.assert_called_once_with(b"{}", "t=1,v1=sig", "whsec_test_secret")
        assert result is event

    def test_invalid_payload(self, stripe_client):
        with patch("stripe.Webhook.construct_event", side_effect=ValueError("bad json")):
            with pytest.raises(StripeClientError) as exc_info:
                stripe_client.construct_webhook_event(b"not json", "t=1,v1=sig")

        assert exc_info.value.code == "INVALID_PAYLOAD"

    def test_invalid_signature(self, stripe_client):
        with patch(
            "stripe.Webhook.construct_event",
            side_effect=stripe.SignatureVerificationError("bad signature", "t=1,v1=sig"),
        ):
            with pytest.raises(StripeClientError) as exc_info:
                stripe_client.construct_webhook_event(b"{}", "t=1,v1=sig")

        assert exc_info.value.code == "INVALID_SIGNATURE"
