"""
Khalti ePayment v2 client.

Amounts go to Khalti in paisa and come back in paisa. `initiate` returns
the `pidx` that identifies the checkout, `verify` is the server-side lookup
that decides whether a payment really completed.
"""

from decimal import Decimal
from typing import Optional

import httpx

from venue_booking.core.exceptions import GatewayUnavailableError
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

KHALTI_COMPLETED = "Completed"


class KhaltiGateway(PaymentGateway):
    provider = PaymentProvider.KHALTI

    def __init__(
        self,
        secret_key: str,
        base_url: str,
        frontend_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._frontend_url = frontend_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={
                "Authorization": f"Key {secret_key}",
                "Content-Type": "application/json",
            },
            transport=transport,
        )

    async def initiate(self, amount: Decimal, order_id: str, order_name: str) -> GatewayCheckout:
        amount_paisa = to_minor_units(amount)
        payload = {
            "return_url": f"{self._frontend_url}/payment/success",
            "website_url": self._frontend_url,
            "amount": amount_paisa,
            "purchase_order_id": order_id,
            "purchase_order_name": order_name,
            "customer_info": {"name": "Guest User"},
            "product_details": [
                {
                    "identity": order_id,
                    "name": order_name,
                    "total_price": amount_paisa,
                    "quantity": 1,
                    "unit_price": amount_paisa,
                }
            ],
        }
        data = await self._post("epayment/initiate/", payload, operation="initiate")

        pidx = data.get("pidx")
        payment_url = data.get("payment_url")
        if not pidx or not payment_url:
            record_gateway_error("khalti", "initiate")
            raise GatewayUnavailableError("Khalti returned an incomplete checkout", gateway="khalti")

        logger.info("khalti_payment_initiated", order_id=order_id, pidx=pidx, amount_paisa=amount_paisa)
        return GatewayCheckout(provider_reference=pidx, redirect_url=payment_url)

    async def verify(self, provider_reference: str) -> GatewayVerification:
        data = await self._post("epayment/lookup/", {"pidx": provider_reference}, operation="verify")
        status = str(data.get("status", ""))
        return GatewayVerification(
            provider_reference=data.get("pidx", provider_reference),
            completed=status == KHALTI_COMPLETED,
            status=status,
            amount=from_minor_units(data.get("total_amount") or 0),
            transaction_id=data.get("transaction_id"),
            raw=data,
        )

    async def _post(self, path: str, payload: dict, operation: str) -> dict:
        try:
            response = await self._client.post(path, json=payload)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            record_gateway_error("khalti", operation)
            logger.error("khalti_request_failed", operation=operation, error=str(e))
            raise GatewayUnavailableError(
                f"Khalti {operation} failed", gateway="khalti", error=str(e)
            ) from e
        except ValueError as e:
            # Non-JSON body
            record_gateway_error("khalti", operation)
            raise GatewayUnavailableError(
                f"Khalti {operation} returned an invalid response", gateway="khalti"
            ) from e

    async def aclose(self) -> None:
        await self._client.aclose()
