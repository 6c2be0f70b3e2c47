"""
Pytest fixtures for test database, client, payment gateway and authentication.

Each test gets its own SQLite file (aiosqlite), so tests are isolated without
a running PostgreSQL. Every HTTP request gets a fresh session that commits
or rolls back like the real `get_db`, which keeps background tasks (webhook
processing) seeing committed data only.
"""

import hashlib
import hmac
import json
import os
import time
import uuid
from datetime import datetime, timezone, timedelta
from decimal import Decimal
from typing import AsyncGenerator, Optional

# Must be set before tour_api reads its settings.
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./tour_api_unused.db"
os.environ["REDIS_ENABLED"] = "false"
os.environ["OUTBOX_WORKER_ENABLED"] = "false"
os.environ["WEBHOOK_PROCESS_IMMEDIATELY"] = "true"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_fake"
os.environ["STRIPE_PUBLISHABLE_KEY"] = "pk_test_fake"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["SMTP_HOST"] = ""
os.environ["DEFAULT_LANGUAGE"] = "en"

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from tour_api.main import app
from tour_api.db.base import Base
from tour_api.db.session import get_db, get_session_factory
from tour_api.core.exceptions import ExternalServiceError, InvalidStateError
from tour_api.core.security import create_access_token, hash_password
from tour_api.infrastructure.stripe_gateway import StripeGateway, get_payment_gateway
from tour_api.models.booking import Booking
from tour_api.models.place import Place
from tour_api.models.user import User, ROLE_ADMIN
from tour_api.services.interfaces.payment_gateway import CheckoutSession, PaymentIntentResult

WEBHOOK_SECRET = os.environ["STRIPE_WEBHOOK_SECRET"]


class FakeStripeGateway(StripeGateway):
    """
    Records provider calls instead of making them. Webhook parsing is
    inherited, so signatures are checked with the real Stripe code.
    """

    def __init__(self):
        super().__init__(
            secret_key="sk_test_fake",
            webhook_secret=WEBHOOK_SECRET,
            publishable_key="pk_test_fake",
        )
        self.sessions: dict[str, CheckoutSession] = {}
        self.intents: dict[str, PaymentIntentResult] = {}
        self.calls: list[tuple] = []
        self.fail_next = False

    def _maybe_fail(self):
        if self.fail_next:
            self.fail_next = False
            raise ExternalServiceError("payment_provider_error", detail="card_declined")

    async def create_checkout_session(
        self, item, success_url, cancel_url, customer_email, metadata, payment_intent_metadata
    ):
        self._maybe_fail()
        self.calls.append(("checkout", item, metadata, payment_intent_metadata))
        session = CheckoutSession(
            id=f"cs_test_{len(self.sessions) + 1}",
            url=f"https://checkout.stripe.test/{len(self.sessions) + 1}",
            status="open",
            payment_status="unpaid",
            amount_total=item.amount_in_cents,
            currency=item.currency,
            customer_email=customer_email,
            metadata=dict(metadata),
        )
        self.sessions[session.id] = session
        return session

    async def retrieve_checkout_session(self, session_id):
        self._maybe_fail()
        if session_id not in self.sessions:
            raise ExternalServiceError("payment_provider_error", detail="No such checkout.session")
        return self.sessions[session_id]

    async def create_payment_intent(self, amount_in_cents, currency, description, metadata):
        self._maybe_fail()
        self.calls.append(("intent", amount_in_cents, currency, metadata))
        intent = PaymentIntentResult(
            id=f"pi_test_{len(self.intents) + 1}",
            status="requires_payment_method",
            client_secret=f"pi_test_{len(self.intents) + 1}_secret",
        )
        self.intents[intent.id] = intent
        return intent

    async def cancel_payment_intent(self, payment_intent_id):
        intent = self.intents.get(payment_intent_id)
        if intent is None:
            raise ExternalServiceError("payment_provider_error", detail="No such payment_intent")
        if intent.status in ("succeeded", "canceled"):
            raise InvalidStateError("payment_already_completed")
        intent.status = "canceled"
        return intent


def make_event(event_type: str, obj: dict, event_id: Optional[str] = None) -> dict:
    return {
        "id": event_id or f"evt_{uuid.uuid4().hex[:16]}",
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    }


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Stripe-Signature header value for `payload`."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.".encode() + payload
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def gateway() -> FakeStripeGateway:
    return FakeStripeGateway()


@pytest_asyncio.fixture
async def client(session_factory, gateway) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with DB, session factory and payment gateway overridden."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_payment_gateway] = lambda: gateway

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _create_user(db: AsyncSession, email: str, **fields) -> User:
    user = User(
        email=email,
        hashed_password=hash_password("testpassword123"),
        first_name=fields.pop("first_name", "Test"),
        last_name=fields.pop("last_name", "User"),
        language=fields.pop("language", "en"),
        **fields,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "test@example.com", phone="+963900000000")


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "other@example.com")


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "admin@example.com", role=ROLE_ADMIN)


def _headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': str(user.id)})}"}


@pytest.fixture
def auth_headers(test_user: User) -> dict:
    return _headers(test_user)


@pytest.fixture
def other_headers(other_user: User) -> dict:
    return _headers(other_user)


@pytest.fixture
def admin_headers(admin_user: User) -> dict:
    return _headers(admin_user)


@pytest_asyncio.fixture
async def test_place(db_session: AsyncSession) -> Place:
    """Historic site with a 5000 SYP entry fee."""
    place = Place(
        name_ar="الجامع الأموي",
        name_en="Umayyad Mosque",
        category="historic",
        address_ar="دمشق القديمة",
        address_en="Old Damascus",
        entry_fee=Decimal("5000"),
        contact_phone="+963112222222",
        featured_image="https://img.test/umayyad.jpg",
    )
    db_session.add(place)
    await db_session.commit()
    await db_session.refresh(place)
    return place


@pytest_asyncio.fixture
async def hotel_place(db_session: AsyncSession) -> Place:
    """Hotel without a configured rate (entry fee 0)."""
    place = Place(
        name_ar="فندق الشام",
        name_en="Cham Palace",
        category="hotel",
        entry_fee=Decimal("0"),
    )
    db_session.add(place)
    await db_session.commit()
    await db_session.refresh(place)
    return place


@pytest.fixture
def booking_factory(db_session: AsyncSession, test_user: User, test_place: Place):
    """Insert a booking directly, bypassing the creation guards."""
    counter = {"n": 0}

    async def create(**overrides) -> Booking:
        counter["n"] += 1
        fields = dict(
            booking_number=f"DAM-TEST-{counter['n']}",
            user_id=test_user.id,
            place_id=test_place.id,
            service_type="tour",
            booking_date=utcnow() + timedelta(days=10),
            number_of_guests=2,
            total_amount=Decimal("5000"),
            currency="SYP",
            status="pending",
            payment_status="pending",
            version=1,
        )
        fields.update(overrides)
        booking = Booking(**fields)
        db_session.add(booking)
        await db_session.commit()
        await db_session.refresh(booking)
        return booking

    return create


async def reload(db: AsyncSession, instance):
    """Re-read a row that another session has changed."""
    await db.refresh(instance)
    return instance


def webhook_body(event: dict) -> tuple[bytes, dict]:
    payload = json.dumps(event).encode()
    return payload, {"Stripe-Signature": sign_payload(payload), "Content-Type": "application/json"}
