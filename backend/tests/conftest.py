"""
Pytest configuration and shared test fixtures.

This module provides pytest configuration, fixtures, and test utilities
for the order tracking backend. It includes an in-memory SQLite database
with the full schema, product factories, a scripted payment gateway and an
async HTTP client wired to the application through dependency overrides.
"""

import os

os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("APP_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_LOG_LEVEL", "WARNING")

from decimal import Decimal  # noqa: E402
from typing import Any, AsyncGenerator, Optional  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker  # noqa: E402

from src.core.config import Settings  # noqa: E402
from src.core.exceptions import InvalidInputError, UpstreamUnavailableError  # noqa: E402
from src.database.connection import (  # noqa: E402
    create_engine,
    create_session_factory,
    create_tables,
)
from src.database.models.product import Product  # noqa: E402
from src.services.catalog.repository import CatalogRepository  # noqa: E402
from src.services.payments.gateway import CheckoutSession, PaymentConfirmation  # noqa: E402


# ============================================================================
# Settings and Database
# ============================================================================


@pytest.fixture
def settings() -> Settings:
    """
    Settings for an isolated in-memory database.

    Returns:
        Settings: Test configuration
    """
    return Settings(
        environment="test",
        database_url="sqlite+aiosqlite:///:memory:",
        log_level="WARNING",
        stripe_secret_key="sk_test_fake_key",
        stripe_webhook_secret="whsec_test_secret",
        ledger_event_on_transition=False,
        enforce_stock_floor=False,
    )


@pytest.fixture
async def engine(settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    """
    Create an engine with the full schema.

    Yields:
        AsyncEngine: Engine bound to a fresh in-memory database
    """
    engine = create_engine(settings)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """
    Provide a session on the test database.

    Yields:
        AsyncSession: Database session
    """
    async with session_factory() as session:
        yield session


@pytest.fixture
def product_factory(session_factory: async_sessionmaker[AsyncSession]):
    """
    Factory for committed products.

    Example:
        product = await product_factory(price=Decimal("20.00"), available_quantity=5)
    """

    async def _create(
        title: str = "Linen Shirt",
        price: Decimal = Decimal("20.00"),
        available_quantity: int = 5,
        category: Optional[str] = "Shirts",
        images: Optional[list[str]] = None,
        show_on_home_page: bool = False,
    ) -> Product:
        async with session_factory() as session:
            product = await CatalogRepository(session).create_product(
                title=title,
                price=price,
                available_quantity=available_quantity,
                category=category,
                images=images if images is not None else ["https://img.example.com/shirt.jpg"],
                show_on_home_page=show_on_home_page,
            )
            await session.commit()
            return product

    return _create


@pytest.fixture
def read_stock(session_factory: async_sessionmaker[AsyncSession]):
    """Read a product's available quantity through a fresh session."""

    async def _read(product_id: Any) -> int:
        async with session_factory() as session:
            product = await session.get(Product, product_id)
            return product.available_quantity

    return _read


# ============================================================================
# Payment Gateway
# ============================================================================


class FakePaymentGateway:
    """
    Scripted payment gateway.

    Confirmations are registered per session reference; unknown references
    raise InvalidInputError like an unknown Stripe session would.
    """

    def __init__(self):
        self.confirmations: dict[str, PaymentConfirmation] = {}
        self.confirm_calls: list[str] = []
        self.checkout_calls: list[dict[str, Any]] = []
        self.webhook_event: tuple[str, Optional[str]] = ("checkout.session.completed", None)
        self.unavailable = False

    def add_confirmation(
        self,
        session_ref: str,
        product_id: Any,
        payment_reference: str = "pi_test_123",
        status: str = "complete",
        buyer_email: str = "buyer@example.com",
        buyer_name: Optional[str] = "Jane Buyer",
        amount_total: Optional[Decimal] = Decimal("20.00"),
    ) -> PaymentConfirmation:
        confirmation = PaymentConfirmation(
            session_ref=session_ref,
            status=status,
            payment_reference=payment_reference,
            buyer_name=buyer_name,
            buyer_email=buyer_email,
            product_ref=str(product_id),
            amount_total=amount_total,
        )
        self.confirmations[session_ref] = confirmation
        return confirmation

    async def confirm_payment(self, session_ref: str) -> PaymentConfirmation:
        self.confirm_calls.append(session_ref)
        if self.unavailable:
            raise UpstreamUnavailableError("Payment provider unavailable", session_ref=session_ref)
        if session_ref not in self.confirmations:
            raise InvalidInputError("Unknown checkout session", session_ref=session_ref)
        return self.confirmations[session_ref]

    async def create_checkout_session(
        self,
        product: Any,
        buyer_email: str,
        buyer_name: Optional[str] = None,
    ) -> CheckoutSession:
        self.checkout_calls.append(
            {"product_id": product.id, "buyer_email": buyer_email, "buyer_name": buyer_name}
        )
        if self.unavailable:
            raise UpstreamUnavailableError("Payment provider unavailable")
        return CheckoutSession(
            session_id="cs_test_new",
            url="https://checkout.stripe.com/c/pay/cs_test_new",
        )

    def parse_webhook_event(self, payload: bytes, signature: str) -> tuple[str, Optional[str]]:
        if signature != "valid":
            raise InvalidInputError("Webhook signature verification failed")
        return self.webhook_event


@pytest.fixture
def fake_gateway() -> FakePaymentGateway:
    return FakePaymentGateway()


# ============================================================================
# HTTP Client
# ============================================================================


@pytest.fixture
async def async_client(
    session_factory: async_sessionmaker[AsyncSession],
    fake_gateway: FakePaymentGateway,
    settings: Settings,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create an asynchronous test client for the FastAPI application.

    The database session, payment gateway and settings dependencies are
    replaced with test doubles. Each request gets its own session that
    commits on success and rolls back on error, like the real dependency.

    Yields:
        AsyncClient: Asynchronous test client

    Example:
        async def test_health_endpoint_async(async_client):
            response = await async_client.get("/health")
            assert response.status_code == 200
    """
    from src.api.deps import get_payment_gateway
    from src.core.config import get_settings
    from src.core.rate_limit import limiter
    from src.database.connection import get_db
    from src.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: fake_gateway
    app.dependency_overrides[get_settings] = lambda: settings
    limiter.reset()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
