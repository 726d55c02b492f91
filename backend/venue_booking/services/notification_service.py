"""
Approval notifications.

Notifications are side effects of an already-committed transition, so
they run as background tasks with a bounded timeout. A failed or timed
out delivery is logged and counted; it never reaches the caller and never
rolls anything back.
"""

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from venue_booking.core.exceptions import GatewayUnavailableError
from venue_booking.core.logging import get_logger
from venue_booking.core.metrics import record_notification
from venue_booking.models.reservation import Reservation
from venue_booking.services.interfaces.notifier import Notifier

logger = get_logger(__name__)

APPROVAL_SUBJECT = "Your booking has been approved"


@dataclass(frozen=True)
class ApprovalNotice:
    """Everything needed to tell a customer their booking is approved."""

    reservation_id: int
    firstname: str
    phone_number: Optional[str]
    email: Optional[str]
    resource_title: str
    service_names: tuple[str, ...]
    total_price: Decimal

    @classmethod
    def from_reservation(cls, reservation: Reservation) -> "ApprovalNotice":
        user = reservation.user
        return cls(
            reservation_id=reservation.id,
            firstname=user.firstname if user else "",
            phone_number=user.phone_number if user else None,
            email=user.email if user else None,
            resource_title=reservation.resource.title if reservation.resource else "",
            service_names=tuple(item.name for item in reservation.line_items),
            total_price=reservation.total_price,
        )


def render_approval_message(notice: ApprovalNotice) -> str:
    services = ", ".join(notice.service_names) if notice.service_names else notice.resource_title
    return (
        f"Hello {notice.firstname},\n"
        f'Your booking for "{notice.resource_title}" has been APPROVED.\n'
        f"\n"
        f"Booked Service: {services}\n"
        f"Total: Rs. {notice.total_price}\n"
        f"\n"
        f"Thank you for choosing us!"
    )


class NotificationDispatcher:
    """Fire-and-forget delivery of approval notices through an injected Notifier."""

    def __init__(self, notifier: Notifier, channel: str = "sms", timeout: float = 15.0):
        self._notifier = notifier
        self._channel = channel
        self._timeout = timeout
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def dispatch_approval(self, notice: ApprovalNotice) -> asyncio.Task:
        task = asyncio.create_task(self.deliver_approval(notice))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def deliver_approval(self, notice: ApprovalNotice) -> None:
        message = render_approval_message(notice)

        if self._channel in ("sms", "both"):
            if notice.phone_number:
                await self._attempt(
                    "sms",
                    notice.reservation_id,
                    self._notifier.send_sms(notice.phone_number, message),
                )
            else:
                record_notification("sms", "skipped")
                logger.warning("sms_skipped", reservation_id=notice.reservation_id, reason="no_phone_number")

        if self._channel in ("email", "both"):
            if notice.email:
                await self._attempt(
                    "email",
                    notice.reservation_id,
                    self._notifier.send_email(notice.email, APPROVAL_SUBJECT, message),
                )
            else:
                record_notification("email", "skipped")
                logger.warning("email_skipped", reservation_id=notice.reservation_id, reason="no_email")

    async def _attempt(self, channel: str, reservation_id: int, send) -> None:
        try:
            await asyncio.wait_for(send, timeout=self._timeout)
        except (GatewayUnavailableError, asyncio.TimeoutError) as e:
            record_notification(channel, "failed")
            logger.warning(
                "notification_failed",
                channel=channel,
                reservation_id=reservation_id,
                error=str(e) or type(e).__name__,
            )
        except Exception:
            # A broken sender must not kill the background task silently
            record_notification(channel, "failed")
            logger.exception("notification_error", channel=channel, reservation_id=reservation_id)
        else:
            record_notification(channel, "sent")
            logger.info("notification_sent", channel=channel, reservation_id=reservation_id)

    async def drain(self) -> None:
        """Wait for every in-flight notification to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
