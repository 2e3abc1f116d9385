"""Shared test fixtures and helpers."""

import os

os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

from datetime import datetime, timedelta, timezone

import fakeredis.aioredis
import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from booking_service.db import create_all, get_session
from booking_service.identity import create_user
from booking_service.main import create_app
from booking_service.models import ROLE_ADMIN, ROLE_USER
from booking_service.notifier import WebhookNotifier
from booking_service.payments import Approved
from booking_service.security import issue_token
from booking_service.store import BookingStore

START = datetime(2025, 3, 9, 12, 0, tzinfo=timezone.utc)

VALID_CARD = {"number": "4242424242424242", "expiry": "12/30", "cvc": "123"}


class FakeClock:
    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class ScriptedPaymentAdapter:
    """Deterministic payment double: replays queued outcomes, approves when empty."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls: list[tuple[int, object]] = []
        self.on_authorize = None

    def queue(self, *outcomes) -> None:
        self.outcomes.extend(outcomes)

    async def authorize(self, amount, card):
        self.calls.append((amount, card))
        if self.on_authorize:
            await self.on_authorize()
        outcome = self.outcomes.pop(0) if self.outcomes else Approved(authorization_id=f"auth_test_{len(self.calls)}")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def payments():
    return ScriptedPaymentAdapter()


@pytest.fixture
def notifier():
    return WebhookNotifier(None)


@pytest.fixture
async def store(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'bookings.db'}")
    await create_all(engine)
    yield BookingStore(get_session(engine))
    await engine.dispose()


@pytest.fixture
async def redis_client():
    client = fakeredis.aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def app(store, redis_client, payments, notifier, clock):
    return create_app(
        store=store,
        redis_client=redis_client,
        payment_adapter=payments,
        notifier=notifier,
        clock=clock,
        rate_limit_per_minute=0,
    )


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def make_auth_headers(store, email: str, role: str) -> dict:
    async with store.session() as db:
        user = await create_user(db, email, "password123", name=email.split("@")[0], role=role)
    token, _ = issue_token(user)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def admin_headers(store):
    return await make_auth_headers(store, "admin@example.com", ROLE_ADMIN)


@pytest.fixture
async def user_headers(store):
    return await make_auth_headers(store, "user@example.com", ROLE_USER)


def reservation_body(
    service_type: str = "optimization",
    date: str | None = "2025-03-10",
    time: str | None = "10:00 AM",
    is_rush: bool = False,
    handle: str = "h",
    email: str = "a@b.com",
) -> dict:
    return {
        "service_type": service_type,
        "date": date,
        "time": time,
        "is_rush": is_rush,
        "contact": {"handle": handle, "email": email},
    }
