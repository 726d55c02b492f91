"""
Venue Booking Engine - composition root

Wires the engine together once per process:
- Structured logging
- Async database engine and session factory
- Redis for the dashboard cache (optional, fails open)
- Notifier and payment gateways chosen from configuration

A transport layer (HTTP, worker, CLI) enters through `lifespan()` and
calls the returned BookingEngine.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from venue_booking.core.config import Settings, get_settings
from venue_booking.core.logging import get_logger, setup_logging
from venue_booking.db.session import create_engine, create_session_factory
from venue_booking.engine import BookingEngine
from venue_booking.infrastructure.redis_client import close_redis, get_redis
from venue_booking.services.cache_service import get_cache_stats
from venue_booking.services.gateway_factory import build_notifier, build_payment_gateways


def build_engine(settings: Optional[Settings] = None) -> tuple[BookingEngine, AsyncEngine]:
    settings = settings or get_settings()
    db_engine = create_engine(settings)
    engine = BookingEngine(
        session_factory=create_session_factory(db_engine),
        notifier=build_notifier(settings),
        gateways=build_payment_gateways(settings),
        settings=settings,
    )
    return engine, db_engine


@asynccontextmanager
async def lifespan(settings: Optional[Settings] = None) -> AsyncIterator[BookingEngine]:
    """Application lifecycle: startup and shutdown hooks."""
    settings = settings or get_settings()
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    # Initialize Redis connection
    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without cache")

    engine, db_engine = build_engine(settings)
    try:
        yield engine
    finally:
        # Cleanup
        await engine.aclose()
        await db_engine.dispose()
        await close_redis()
        logger.info("application_shutdown")


async def health_check() -> dict:
    """Health summary for process supervisors."""
    settings = get_settings()
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": await get_cache_stats(),
    }
