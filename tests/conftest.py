"""Global test configuration and fixtures for the credit ledger API."""

import os

# Read by the app lifespan; tests drive the refund worker explicitly
os.environ["REFUND_WORKER_ENABLED"] = "false"

from collections.abc import AsyncGenerator
from typing import Awaitable, Callable

import pytest
import pytest_asyncio
from asgi_lifespan import LifespanManager
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.api.core.constants import JWT_ALGORITHM
from src.database.models import Account, Base
from src.modules.ledger.service import CreditLedgerService
from src.utils.settings.auth import AuthSettings
from tests.factories import (
    AccountFactory,
    AdminActivityLogFactory,
    PendingOrderFactory,
    ReservationFactory,
)
from tests.utils.constants import TEST_ADMIN_ID, TEST_BASE_URL, TEST_USER_ID
from tests.utils.fakes import FakeInferenceClient, FakePaymentGateway


@pytest.fixture
def account_factory():
    return AccountFactory


@pytest.fixture
def order_factory():
    return PendingOrderFactory


@pytest.fixture
def reservation_factory():
    return ReservationFactory


@pytest.fixture
def admin_activity_factory():
    return AdminActivityLogFactory


@pytest_asyncio.fixture
async def async_engine(tmp_path):
    """SQLite database file per test."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        # Concurrent writers wait for the file lock instead of failing
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def create_account(
    session_factory,
) -> Callable[..., Awaitable[Account]]:
    """Open an account funded through the ledger, so its history is consistent."""

    async def _create(user_id: str | None = None, balance: int = 0) -> Account:
        async with session_factory() as session:
            if user_id is None:
                user_id = AccountFactory.build().user_id
            return await CreditLedgerService(session).open_account(
                user_id, initial_credits=balance
            )

    return _create


@pytest.fixture
def fake_inference() -> FakeInferenceClient:
    return FakeInferenceClient()


@pytest.fixture
def fake_gateway() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest_asyncio.fixture
async def app(session_factory, fake_inference, fake_gateway):
    """FastAPI application wired to the test database and fake collaborators."""
    from src.main import app

    async with LifespanManager(app):
        app.state.session_factory = session_factory
        app.state.inference_client = fake_inference
        app.state.payment_gateway = fake_gateway
        yield app


# JWT Token Fixtures
@pytest.fixture()
def jwt_token_factory() -> Callable[..., str]:
    """Factory for creating JWT tokens as the identity service would."""
    auth_settings = AuthSettings()

    def create_token(
        user_id: str, email: str = "user@example.com", role: str = "authenticated"
    ) -> str:
        payload = {
            "sub": user_id,
            "email": email,
            "role": "authenticated",
            "aud": auth_settings.JWT_AUDIENCE,
            "app_metadata": {"provider": "email", "role": role},
            "user_metadata": {"email": email},
        }
        return jwt.encode(
            payload,
            auth_settings.JWT_SECRET.get_secret_value(),
            algorithm=JWT_ALGORITHM,
        )

    return create_token


@pytest_asyncio.fixture
async def test_account(create_account) -> Account:
    return await create_account(TEST_USER_ID, balance=100)


# HTTP Client Fixtures
@pytest_asyncio.fixture
async def public_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create HTTP client for testing public endpoints."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url=TEST_BASE_URL,
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def authorized_client(
    app: FastAPI, jwt_token_factory
) -> AsyncGenerator[AsyncClient, None]:
    """Client for TEST_USER_ID. Request ``test_account`` too for a funded account."""
    token = jwt_token_factory(TEST_USER_ID)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url=TEST_BASE_URL,
        headers={"Authorization": f"Bearer {token}"},
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def admin_client(
    app: FastAPI, jwt_token_factory
) -> AsyncGenerator[AsyncClient, None]:
    """Create HTTP client with admin JWT authorization headers."""
    token = jwt_token_factory(TEST_ADMIN_ID, "admin@example.com", role="admin")
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url=TEST_BASE_URL,
        headers={"Authorization": f"Bearer {token}"},
    ) as ac:
        yield ac


@pytest.fixture
def client_factory(app: FastAPI, jwt_token_factory):
    """Factory for creating HTTP clients with different user contexts."""

    def create_client_for_user(user_id: str, role: str = "authenticated") -> AsyncClient:
        token = jwt_token_factory(user_id, role=role)
        return AsyncClient(
            transport=ASGITransport(app=app),
            base_url=TEST_BASE_URL,
            headers={"Authorization": f"Bearer {token}"},
        )

    return create_client_for_user
