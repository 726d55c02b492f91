"""
Stripe Checkout client.

The stripe SDK is blocking, so every call runs in a worker thread under
the gateway timeout. A checkout session id is the provider reference; the
session's `payment_status == "paid"` is what counts as completed.
"""

import asyncio
import json
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Union

import stripe

from venue_booking.core.exceptions import GatewayUnavailableError, PaymentMismatchError
from venue_booking.core.logging import get_logger
from venue_booking.core.metrics import record_gateway_error
from venue_booking.core.money import from_minor_units, to_minor_units
from venue_booking.models.payment import PaymentProvider
from venue_booking.services.interfaces.payment_gateway import (
    GatewayCheckout,
    GatewayVerification,
    PaymentGateway,
)

logger = get_logger(__name__)

CHECKOUT_COMPLETED_EVENT = "checkout.session.completed"


@dataclass(frozen=True)
class StripeWebhookPayment:
    session_id: str
    order_id: Optional[str]
    amount: Decimal


class StripeGateway(PaymentGateway):
    provider = PaymentProvider.STRIPE

    def __init__(
        self,
        secret_key: str,
        frontend_url: str,
        currency: str = "npr",
        timeout: float = 10.0,
        webhook_secret: Optional[str] = None,
        client: Optional[stripe.StripeClient] = None,
    ):
        self._client = client or stripe.StripeClient(secret_key)
        self._frontend_url = frontend_url.rstrip("/")
        self._currency = currency
        self._timeout = timeout
        self._webhook_secret = webhook_secret

    async def initiate(self, amount: Decimal, order_id: str, order_name: str) -> GatewayCheckout:
        params = {
            "mode": "payment",
            "client_reference_id": order_id,
            "metadata": {"order_id": order_id},
            "line_items": [
                {
                    "price_data": {
                        "currency": self._currency,
                        "product_data": {"name": order_name},
                        "unit_amount": to_minor_units(amount),
                    },
                    "quantity": 1,
                }
            ],
            "success_url": f"{self._frontend_url}/payment/success?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{self._frontend_url}/payment/cancel",
        }
        session = await self._call("initiate", self._client.checkout.sessions.create, params=params)

        logger.info("stripe_session_created", order_id=order_id, session_id=session.id)
        return GatewayCheckout(provider_reference=session.id, redirect_url=session.url)

    async def verify(self, provider_reference: str) -> GatewayVerification:
        session = await self._call("verify", self._client.checkout.sessions.retrieve, provider_reference)

        payment_intent = session.payment_intent
        if payment_intent is not None and not isinstance(payment_intent, str):
            payment_intent = payment_intent.id

        return GatewayVerification(
            provider_reference=session.id,
            completed=session.payment_status == "paid",
            status=str(session.payment_status),
            amount=from_minor_units(session.amount_total or 0),
            transaction_id=payment_intent,
        )

    def parse_webhook(self, payload: Union[bytes, str], signature: str) -> Optional[StripeWebhookPayment]:
        """
        Verify a webhook signature and extract a completed checkout.
        Returns None for event types the engine does not act on.
        """
        if not self._webhook_secret:
            raise GatewayUnavailableError("Stripe webhook secret is not configured", gateway="stripe")

        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")
        try:
            stripe.WebhookSignature.verify_header(payload, signature, self._webhook_secret)
            event = json.loads(payload)
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning("stripe_webhook_rejected", error=str(e))
            raise PaymentMismatchError("Invalid Stripe webhook", error=str(e)) from e

        if event["type"] != CHECKOUT_COMPLETED_EVENT:
            logger.debug("stripe_webhook_ignored", event_type=event["type"])
            return None

        session = event["data"]["object"]
        metadata = session.get("metadata") or {}
        return StripeWebhookPayment(
            session_id=session["id"],
            order_id=metadata.get("order_id") or session.get("client_reference_id"),
            amount=from_minor_units(session.get("amount_total") or 0),
        )

    async def _call(self, operation: str, fn, *args, **kwargs):
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(fn, *args, **kwargs),
                timeout=self._timeout,
            )
        except (asyncio.TimeoutError, stripe.StripeError) as e:
            record_gateway_error("stripe", operation)
            logger.error("stripe_request_failed", operation=operation, error=str(e))
            raise GatewayUnavailableError(
                f"Stripe {operation} failed", gateway="stripe", error=str(e)
            ) from e
