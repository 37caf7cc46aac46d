"""Test fixtures for the settlement service."""
from __future__ import annotations

import hashlib
import hmac
import json
import os
import time
import uuid
from collections.abc import AsyncIterator, Callable
from decimal import Decimal
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

WEBHOOK_SECRET = "whsec_testsecret"

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
os.environ.setdefault("PAYMENTS_CURRENCY", "usd")

from coursepay.api import deps
from coursepay.core.config import get_settings
from coursepay.core.security import create_access_token
from coursepay.db.base import Base
from coursepay.db.session import dispose_engine, get_sessionmaker
from coursepay.integrations import (
    GatewayClientError,
    GatewayUnavailableError,
    ProviderIntent,
    StripeGateway,
)
from coursepay.integrations.stripe_client import to_minor_units
from coursepay.main import app
from coursepay.models import Course


class FakeGateway(StripeGateway):
    """In-memory gateway honoring idempotency tokens.

    Signature verification is inherited, so webhook tests exercise the real
    Stripe signing scheme.
    """

    def __init__(self) -> None:
        super().__init__(
            "sk_test_fake", webhook_secret=WEBHOOK_SECRET, idempotency_prefix="test"
        )
        self.intents: dict[str, ProviderIntent] = {}
        self.idempotency: dict[str, str] = {}
        self.calls: list[str] = []
        self.unavailable = False
        self.rejecting = False

    def _guard(self, action: str) -> None:
        self.calls.append(action)
        if self.unavailable:
            raise GatewayUnavailableError(f"Payment provider unavailable: {action}")
        if self.rejecting:
            raise GatewayClientError(f"Payment provider rejected request: {action}")

    def create_provider_intent(
        self,
        *,
        amount: Decimal,
        currency: str,
        metadata: dict[str, Any],
        idempotency_token: str,
        description: str | None = None,
    ) -> ProviderIntent:
        self._guard("create")
        key = self._idempotency_key(idempotency_token)
        if key in self.idempotency:
            return self.intents[self.idempotency[key]]
        intent_id = f"pi_{uuid.uuid4().hex[:24]}"
        intent = ProviderIntent(
            id=intent_id,
            client_secret=f"{intent_id}_secret_{uuid.uuid4().hex[:16]}",
            status="requires_payment_method",
            amount=to_minor_units(amount, currency),
            currency=currency,
            metadata=dict(metadata),
        )
        self.intents[intent_id] = intent
        self.idempotency[key] = intent_id
        return intent

    def retrieve_status(self, provider_intent_id: str) -> ProviderIntent:
        self._guard("retrieve")
        intent = self.intents.get(provider_intent_id)
        if intent is None:
            raise GatewayClientError("No such payment_intent")
        return intent

    def cancel(self, provider_intent_id: str) -> ProviderIntent:
        self._guard("cancel")
        intent = self.intents.get(provider_intent_id)
        if intent is None:
            raise GatewayClientError("No such payment_intent")
        intent.status = "canceled"
        return intent

    def count(self, action: str) -> int:
        return self.calls.count(action)


def sign_payload(
    payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None
) -> str:
    """Build a ``Stripe-Signature`` header for ``payload``."""
    ts = int(time.time()) if timestamp is None else timestamp
    signed = f"{ts}.{payload.decode()}".encode()
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def build_event(
    event_type: str,
    intent_id: str,
    *,
    amount: int | None = None,
    event_id: str | None = None,
    failure_message: str | None = None,
) -> bytes:
    data_object: dict[str, Any] = {"id": intent_id, "object": "payment_intent"}
    if amount is not None:
        data_object["amount"] = amount
        data_object["amount_received"] = amount
    if failure_message is not None:
        data_object["last_payment_error"] = {"message": failure_message}
    event = {
        "id": event_id or f"evt_{uuid.uuid4().hex[:24]}",
        "object": "event",
        "type": event_type,
        "data": {"object": data_object},
    }
    return json.dumps(event).encode()


@pytest.fixture(scope="session")
def db_url(tmp_path_factory: pytest.TempPathFactory) -> str:
    """Provide a temporary SQLite database URL for the test session."""
    db_path = tmp_path_factory.mktemp("db") / "test.db"
    return f"sqlite+aiosqlite:///{db_path}"


@pytest_asyncio.fixture()
async def reset_database(db_url: str) -> AsyncIterator[None]:
    """Drop and recreate the database schema for an isolated test."""
    os.environ["DATABASE_URL"] = db_url
    get_settings.cache_clear()
    get_settings()

    await dispose_engine(db_url)
    engine = create_async_engine(db_url)
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.drop_all)
        await connection.run_sync(Base.metadata.create_all)
    await engine.dispose()
    yield
    await dispose_engine(db_url)


@pytest_asyncio.fixture()
async def catalog(reset_database: None, db_url: str) -> dict[str, Course]:
    """Seed a small catalog keyed by course slug."""
    sessionmaker = get_sessionmaker(db_url)
    courses = {
        "async-web-services": Course(
            slug="async-web-services",
            title="Async Web Services",
            price=Decimal("500000"),
        ),
        "intro-to-python": Course(
            slug="intro-to-python",
            title="Introduction to Python",
            price=Decimal("0"),
            is_free=True,
        ),
        "open-day": Course(slug="open-day", title="Open Day", price=Decimal("0")),
        "retired-course": Course(
            slug="retired-course",
            title="Retired Course",
            price=Decimal("120.00"),
            is_active=False,
        ),
    }
    async with sessionmaker() as session:
        session.add_all(courses.values())
        await session.commit()
    return courses


@pytest_asyncio.fixture()
async def session(catalog: dict[str, Course], db_url: str) -> AsyncIterator[AsyncSession]:
    async with get_sessionmaker(db_url)() as db_session:
        yield db_session


@pytest.fixture()
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture()
def user_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture()
def signer() -> Callable[..., str]:
    return sign_payload


@pytest.fixture()
def event_factory() -> Callable[..., bytes]:
    return build_event


@pytest_asyncio.fixture()
async def app_context(
    catalog: dict[str, Course],
    gateway: FakeGateway,
    user_id: uuid.UUID,
) -> AsyncIterator[dict[str, object]]:
    """Yield an async client wired to the fake gateway and a caller token."""
    app.dependency_overrides[deps.get_optional_gateway_client] = lambda: gateway
    token = create_access_token(str(user_id))
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield {
                "client": client,
                "gateway": gateway,
                "user_id": user_id,
                "headers": {"Authorization": f"Bearer {token}"},
                "catalog": catalog,
            }
    finally:
        app.dependency_overrides.pop(deps.get_optional_gateway_client, None)
