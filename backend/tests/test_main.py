"""
Tests for process wiring and the shared error / money helpers.
"""

from decimal import Decimal

import pytest

from venue_booking.core.config import Settings
from venue_booking.core.exceptions import ConflictError, ConflictKind, NotFoundError
from venue_booking.core.money import from_minor_units, to_decimal, to_minor_units
from venue_booking.engine import BookingEngine
from venue_booking.main import build_engine, health_check, lifespan
from venue_booking.models.payment import PaymentProvider


@pytest.mark.asyncio
async def test_lifespan_yields_a_working_engine(tmp_path):
    settings = Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'app.db'}",
        REDIS_ENABLED=False,
        SMS_API_KEY=None,
        SMTP_HOST=None,
        KHALTI_SECRET_KEY=None,
        STRIPE_SECRET_KEY=None,
    )

    async with lifespan(settings) as engine:
        assert isinstance(engine, BookingEngine)


@pytest.mark.asyncio
async def test_build_engine_wires_configured_gateways(tmp_path):
    settings = Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'app.db'}",
        KHALTI_SECRET_KEY="k",
        STRIPE_SECRET_KEY=None,
    )

    engine, db_engine = build_engine(settings)
    try:
        assert engine.providers == {PaymentProvider.KHALTI}
    finally:
        await engine.aclose()
        await db_engine.dispose()


@pytest.mark.asyncio
async def test_health_check_without_redis():
    health = await health_check()

    assert health["status"] == "healthy"
    assert health["cache"] == {"status": "disabled"}


def test_error_payloads():
    conflict = ConflictError(ConflictKind.PENDING_OVERLAP, resource_id=1)
    assert conflict.to_dict() == {
        "code": "pending_overlap",
        "message": "Booking overlaps with an existing pending request",
        "detail": {"resource_id": 1},
    }
    assert NotFoundError("Booking 5 doesn't exist").status_code == 404


def test_money_conversions():
    assert to_decimal(0.1) == Decimal("0.10")
    assert to_decimal("400") == Decimal("400.00")
    assert to_minor_units(Decimal("400.505")) == 40051
    assert from_minor_units(40050) == Decimal("400.50")
