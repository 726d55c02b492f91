"""
Notification senders: Samaya SMS over HTTP and SMTP email.

SMS goes through httpx with the configured gateway timeout. smtplib is
blocking, so email delivery runs in a worker thread under the same
timeout.
"""

import asyncio
import smtplib
from email.message import EmailMessage
from typing import Optional

import httpx

from venue_booking.core.config import Settings
from venue_booking.core.exceptions import GatewayUnavailableError
from venue_booking.core.logging import get_logger
from venue_booking.core.metrics import record_gateway_error
from venue_booking.services.interfaces.notifier import Notifier

logger = get_logger(__name__)


class GatewayNotifier(Notifier):
    """Sends SMS via the Samaya HTTP API and email via SMTP."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._settings = settings
        self._http = httpx.AsyncClient(
            timeout=settings.GATEWAY_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def send_sms(self, phone: str, text: str) -> None:
        if not self._settings.SMS_API_KEY:
            raise GatewayUnavailableError("SMS gateway is not configured", gateway="sms")

        params = {
            "key": self._settings.SMS_API_KEY,
            "contacts": phone,
            "senderid": self._settings.SMS_SENDER_ID,
            "msg": text,
            "responsetype": "json",
        }
        try:
            response = await self._http.get(self._settings.SMS_API_URL, params=params)
            response.raise_for_status()
        except httpx.HTTPError as e:
            record_gateway_error("sms", "send")
            raise GatewayUnavailableError("SMS send failed", gateway="sms", error=str(e)) from e

        logger.info("sms_sent", phone=phone, status_code=response.status_code)

    async def send_email(self, to: str, subject: str, body: str) -> None:
        if not self._settings.SMTP_HOST:
            raise GatewayUnavailableError("SMTP is not configured", gateway="email")

        message = EmailMessage()
        message["From"] = self._settings.EMAIL_FROM
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)

        try:
            await asyncio.wait_for(
                asyncio.to_thread(self._deliver, message),
                timeout=self._settings.GATEWAY_TIMEOUT_SECONDS,
            )
        except (smtplib.SMTPException, OSError, asyncio.TimeoutError) as e:
            record_gateway_error("email", "send")
            raise GatewayUnavailableError("Email send failed", gateway="email", error=str(e)) from e

        logger.info("email_sent", to=to, subject=subject)

    def _deliver(self, message: EmailMessage) -> None:
        settings = self._settings
        with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=settings.GATEWAY_TIMEOUT_SECONDS) as server:
            if settings.SMTP_USE_TLS:
                server.starttls()
            if settings.SMTP_USER and settings.SMTP_PASSWORD:
                server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
            server.send_message(message)

    async def aclose(self) -> None:
        await self._http.aclose()


class LoggingNotifier(Notifier):
    """
    Stand-in used when no SMS key or SMTP host is configured.
    Logs what would have been sent so development flows stay visible.
    """

    async def send_sms(self, phone: str, text: str) -> None:
        logger.warning("sms_not_configured", phone=phone, text=text)

    async def send_email(self, to: str, subject: str, body: str) -> None:
        logger.warning("email_not_configured", to=to, subject=subject)
