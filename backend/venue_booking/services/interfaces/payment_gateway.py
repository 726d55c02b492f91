"""
Payment gateway port.
Covers only the handshake the engine needs: start a checkout and look up
its server-side status. Settlement is the provider's business.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from venue_booking.models.payment import PaymentProvider


@dataclass(frozen=True)
class GatewayCheckout:
    provider_reference: str
    redirect_url: str


@dataclass(frozen=True)
class GatewayVerification:
    provider_reference: str
    completed: bool
    status: str
    amount: Decimal
    transaction_id: Optional[str] = None
    raw: dict = field(default_factory=dict, compare=False)


class PaymentGateway(ABC):
    """
    Interface for payment providers.

    Implementations:
    - KhaltiGateway: Khalti ePayment v2 (initiate + lookup)
    - StripeGateway: Stripe Checkout sessions
    """

    provider: PaymentProvider

    @abstractmethod
    async def initiate(self, amount: Decimal, order_id: str, order_name: str) -> GatewayCheckout:
        """
        Start a checkout for `amount` (major currency units).

        Raises:
            GatewayUnavailableError: provider timeout, network error or non-2xx
        """

    @abstractmethod
    async def verify(self, provider_reference: str) -> GatewayVerification:
        """
        Look up the server-side status of a checkout. Safe to retry.

        Raises:
            GatewayUnavailableError: provider timeout, network error or non-2xx
        """

    async def aclose(self) -> None:
        """Release network resources held by the client."""
