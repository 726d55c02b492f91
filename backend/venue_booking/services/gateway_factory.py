"""
Outbound gateway factory.
Chooses which notifier and payment providers to wire into the engine.
"""

from venue_booking.core.config import Settings
from venue_booking.core.logging import get_logger
from venue_booking.infrastructure.khalti import KhaltiGateway
from venue_booking.infrastructure.notifier import GatewayNotifier, LoggingNotifier
from venue_booking.infrastructure.stripe_gateway import StripeGateway
from venue_booking.models.payment import PaymentProvider
from venue_booking.services.interfaces.notifier import Notifier
from venue_booking.services.interfaces.payment_gateway import PaymentGateway

logger = get_logger(__name__)


def build_notifier(settings: Settings) -> Notifier:
    """
    Real senders when any channel is configured, otherwise a logging
    stand-in so development installs never try to reach the network.
    """
    if settings.SMS_API_KEY or settings.SMTP_HOST:
        return GatewayNotifier(settings)

    logger.warning("notifier_not_configured", channel=settings.NOTIFICATION_CHANNEL)
    return LoggingNotifier()


def build_payment_gateways(settings: Settings) -> dict[PaymentProvider, PaymentGateway]:
    """Providers with credentials present. Missing ones are simply not offered."""
    gateways: dict[PaymentProvider, PaymentGateway] = {}

    if settings.KHALTI_SECRET_KEY:
        gateways[PaymentProvider.KHALTI] = KhaltiGateway(
            secret_key=settings.KHALTI_SECRET_KEY,
            base_url=settings.KHALTI_API_URL,
            frontend_url=settings.FRONTEND_URL,
            timeout=settings.GATEWAY_TIMEOUT_SECONDS,
        )

    if settings.STRIPE_SECRET_KEY:
        gateways[PaymentProvider.STRIPE] = StripeGateway(
            secret_key=settings.STRIPE_SECRET_KEY,
            frontend_url=settings.FRONTEND_URL,
            currency=settings.STRIPE_CURRENCY,
            timeout=settings.GATEWAY_TIMEOUT_SECONDS,
            webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
        )

    logger.info("payment_gateways_configured", providers=[p.value for p in gateways])
    return gateways
