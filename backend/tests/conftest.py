"""
Pytest fixtures for the booking engine.

Each test gets a throwaway SQLite database file (override with
TEST_DATABASE_URL to run against PostgreSQL), a seeded catalog, and fake
notifier / payment gateways so nothing leaves the process.
"""

import os

os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import date
from decimal import Decimal
from itertools import count
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from venue_booking.core.config import Settings, get_settings
from venue_booking.core.exceptions import GatewayUnavailableError
from venue_booking.core.security import Principal, Role
from venue_booking.db.base import Base
from venue_booking.db.session import create_engine, create_session_factory
from venue_booking.engine import BookingEngine
from venue_booking.models import EventType, Resource, ServiceCategory, ServiceLineItem, User
from venue_booking.models.payment import PaymentProvider
from venue_booking.schemas.reservation import ReservationCreate
from venue_booking.services.interfaces.notifier import Notifier
from venue_booking.services.interfaces.payment_gateway import (
    GatewayCheckout,
    GatewayVerification,
    PaymentGateway,
)

get_settings.cache_clear()


class FakeNotifier(Notifier):
    """Records every message; can be told to fail."""

    def __init__(self):
        self.sms: list[tuple[str, str]] = []
        self.emails: list[tuple[str, str, str]] = []
        self.fail = False

    async def send_sms(self, phone: str, text: str) -> None:
        if self.fail:
            raise GatewayUnavailableError("SMS gateway down", gateway="sms")
        self.sms.append((phone, text))

    async def send_email(self, to: str, subject: str, body: str) -> None:
        if self.fail:
            raise GatewayUnavailableError("SMTP down", gateway="email")
        self.emails.append((to, subject, body))


class FakeGateway(PaymentGateway):
    """
    In-memory payment provider.

    `complete(reference)` marks a checkout as paid. `unavailable` makes
    every call raise, `verify_failures` makes only the next N lookups fail.
    """

    def __init__(self, provider: PaymentProvider = PaymentProvider.KHALTI):
        self.provider = provider
        self.checkouts: dict[str, Decimal] = {}
        self.completed: set[str] = set()
        self.paid_amounts: dict[str, Decimal] = {}
        self.unavailable = False
        self.verify_failures = 0
        self.initiate_calls = 0
        self.verify_calls = 0
        self._ids = count(1)

    def complete(self, reference: str, amount: Optional[Decimal] = None) -> None:
        self.completed.add(reference)
        if amount is not None:
            self.paid_amounts[reference] = amount

    async def initiate(self, amount: Decimal, order_id: str, order_name: str) -> GatewayCheckout:
        self.initiate_calls += 1
        if self.unavailable:
            raise GatewayUnavailableError("Provider timeout", gateway=self.provider.value)
        reference = f"{self.provider.value.lower()}-{next(self._ids)}"
        self.checkouts[reference] = amount
        return GatewayCheckout(provider_reference=reference, redirect_url=f"https://pay.test/{reference}")

    async def verify(self, provider_reference: str) -> GatewayVerification:
        self.verify_calls += 1
        if self.unavailable:
            raise GatewayUnavailableError("Provider timeout", gateway=self.provider.value)
        if self.verify_failures:
            self.verify_failures -= 1
            raise GatewayUnavailableError("Provider timeout", gateway=self.provider.value)

        done = provider_reference in self.completed
        amount = self.paid_amounts.get(provider_reference, self.checkouts.get(provider_reference, Decimal("0")))
        return GatewayVerification(
            provider_reference=provider_reference,
            completed=done,
            status="Completed" if done else "Pending",
            amount=amount,
            transaction_id=f"txn-{provider_reference}" if done else None,
        )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        REDIS_ENABLED=False,
        NOTIFICATION_CHANNEL="sms",
        NOTIFICATION_TIMEOUT_SECONDS=1.0,
        GATEWAY_MAX_RETRIES=3,
        REJECT_OVERLAPPING_PENDING_ON_APPROVAL=True,
    )


@pytest_asyncio.fixture
async def db_engine(tmp_path, settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    """Create tables, yield the engine, then drop tables for isolation."""
    url = os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"
    engine = create_engine(settings, url=url)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(db_engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def khalti() -> FakeGateway:
    return FakeGateway(PaymentProvider.KHALTI)


@pytest_asyncio.fixture
async def engine(session_factory, notifier, khalti, settings) -> AsyncGenerator[BookingEngine, None]:
    booking_engine = BookingEngine(
        session_factory=session_factory,
        notifier=notifier,
        gateways={PaymentProvider.KHALTI: khalti},
        settings=settings,
        retry_backoff=0,
    )
    yield booking_engine
    await booking_engine.aclose()


@pytest_asyncio.fixture
async def catalog(session_factory) -> dict:
    """
    Two users, two venues, one event type and a small add-on catalog.

    Hall A offers a catering tent (500, discount 100), a projector (200, no
    discount) and a limousine whose discount exceeds its price (300, 400).
    """
    async with session_factory() as session:
        admin = User(email="admin@example.com", firstname="Asha", lastname="Admin", phone_number="9800000001", role=Role.ADMIN)
        customer = User(email="ram@example.com", firstname="Ram", lastname="Thapa", phone_number="9800000002", role=Role.USER)
        other = User(email="sita@example.com", firstname="Sita", lastname="Rai", phone_number=None, role=Role.USER)
        hall = Resource(title="Hall A", address="Kathmandu", location="Baneshwor", is_active=True)
        garden = Resource(title="Garden B", address="Lalitpur", location="Jhamsikhel", is_active=True)
        closed = Resource(title="Closed Venue", is_active=False)
        wedding = EventType(title="Wedding")
        session.add_all([admin, customer, other, hall, garden, closed, wedding])
        await session.flush()

        tent = ServiceLineItem(resource_id=hall.id, category=ServiceCategory.CATERING_TENT, name="Tent", price=Decimal("500"), offer_price=Decimal("100"))
        projector = ServiceLineItem(resource_id=hall.id, category=ServiceCategory.MULTIMEDIA, name="Projector", price=Decimal("200"))
        limo = ServiceLineItem(resource_id=hall.id, category=ServiceCategory.LUXURY, name="Limousine", price=Decimal("300"), offer_price=Decimal("400"))
        garden_band = ServiceLineItem(resource_id=garden.id, category=ServiceCategory.MUSICAL, name="Band", price=Decimal("1000"))
        session.add_all([tent, projector, limo, garden_band])
        await session.commit()

        return {
            "admin": Principal(user_id=admin.id, role=Role.ADMIN),
            "customer": Principal(user_id=customer.id, role=Role.USER),
            "other": Principal(user_id=other.id, role=Role.USER),
            "hall": hall.id,
            "garden": garden.id,
            "closed": closed.id,
            "wedding": wedding.id,
            "tent": tent.id,
            "projector": projector.id,
            "limo": limo.id,
            "garden_band": garden_band.id,
        }


@pytest.fixture
def make_request(catalog):
    """Build a ReservationCreate for the customer on Hall A."""

    def _make(start: date, end: date, **overrides) -> ReservationCreate:
        data = {
            "resource_id": catalog["hall"],
            "user_id": catalog["customer"].user_id,
            "event_type_id": catalog["wedding"],
            "start_date": start,
            "end_date": end,
            "selections": {},
        }
        data.update(overrides)
        return ReservationCreate(**data)

    return _make
