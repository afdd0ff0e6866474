"""
Pytest configuration and fixtures for testing
"""
import os

# Settings are read at import time, so the environment is prepared first
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("IDENTITY_HOOK_SECRET", "test-hook-secret")
os.environ.setdefault("STRIPE_PRICE_BASIC", "price_basic_test")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.pop("ENV", None)
os.environ.pop("RENDER", None)

import itertools
from datetime import datetime, timezone

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from database import Base, get_db
from errors import PaymentProviderError
from services.payment_provider import PaymentProvider, get_payment_provider

T0 = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)


class FakePaymentProvider(PaymentProvider):
    """
    In-memory stand-in for Stripe.

    Records every call; ``fail_for`` makes subscription creation fail for the
    listed customer emails or profile ids.
    """

    def __init__(self):
        self._ids = itertools.count(1)
        self.customers = {}
        self.subscriptions = {}
        self.calls = []
        self.fail_for = set()
        self._idempotent = {}

    async def create_customer(self, email, metadata, idempotency_key=None):
        self.calls.append(("create_customer", email))
        if idempotency_key and idempotency_key in self._idempotent:
            return self._idempotent[idempotency_key]
        customer_id = f"cus_{next(self._ids)}"
        self.customers[customer_id] = {"email": email, "metadata": dict(metadata)}
        if idempotency_key:
            self._idempotent[idempotency_key] = customer_id
        return customer_id

    async def create_subscription(self, customer_id, price_id, trial_end, metadata, idempotency_key=None):
        self.calls.append(("create_subscription", customer_id))
        email = self.customers.get(customer_id, {}).get("email")
        if email in self.fail_for or metadata.get("profile_id") in self.fail_for:
            raise PaymentProviderError("Your card was declined.")
        subscription_id = f"sub_{next(self._ids)}"
        self.subscriptions[subscription_id] = {
            "customer": customer_id,
            "price": price_id,
            "trial_end": trial_end,
            "metadata": dict(metadata),
            "status": "active",
        }
        return subscription_id

    async def cancel_subscription(self, subscription_id):
        self.calls.append(("cancel_subscription", subscription_id))
        self.subscriptions[subscription_id]["status"] = "canceled"
        return "canceled"

    async def get_subscription(self, subscription_id):
        self.calls.append(("get_subscription", subscription_id))
        return self.subscriptions[subscription_id]["status"]

    async def create_checkout_session(self, customer_id, price_id, success_url, cancel_url, metadata):
        self.calls.append(("create_checkout_session", customer_id))
        return f"https://checkout.stripe.test/{customer_id}"

    async def create_portal_session(self, customer_id, return_url):
        self.calls.append(("create_portal_session", customer_id))
        return f"https://billing.stripe.test/{customer_id}"

    def count(self, name):
        return sum(1 for call in self.calls if call[0] == name)


@pytest.fixture
async def test_engine(tmp_path):
    """Per-test SQLite file database with all tables created."""
    import database_models  # noqa: F401

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest.fixture
async def test_db(session_factory):
    """Isolated AsyncSession for repository and service tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_provider():
    return FakePaymentProvider()


@pytest.fixture
async def async_client(session_factory, fake_provider):
    """
    Async HTTP client against the app with the test database and the fake
    payment provider swapped in.
    """
    from main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_provider] = lambda: fake_provider

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


async def seed_profile(session, email="lawyer@example.com", status="unconfirmed", trial_expires_at=None,
                       role="user", trial_limit=20, **extra):
    """Insert a user + profile row directly, bypassing the signup flow."""
    from auth_utils import hash_password
    from database_models import Profile, User
    from models.enums import Role, SubscriptionStatus

    user = User(email=email, hashed_password=hash_password("Str0ng!Password"))
    session.add(user)
    await session.flush()
    profile = Profile(
        id=user.id,
        email=email,
        role=Role(role),
        subscription_status=SubscriptionStatus(status),
        trial_expires_at=trial_expires_at,
        trial_limit=trial_limit,
        **extra,
    )
    session.add(profile)
    await session.commit()
    return profile.id


