"""
Payment handshake with the gateways.

INITIATION
  Read the reservation, ask the gateway for a checkout, and only then
  persist a PENDING PaymentRecord. If the gateway fails nothing is written,
  so no record is ever left dangling.

CONFIRMATION
  1. Idempotency: if the reservation already has a COMPLETED record, the
     confirmation is a no-op and returns the current state.
  2. The reference must match an initiated record and the amount must match
     what was initiated, otherwise PaymentMismatchError.
  3. Server-side lookup at the gateway, bounded by a timeout and retried a
     few times (lookups are idempotent). If it never answers the record
     stays PENDING and the whole call can be retried later.
  4. Mark COMPLETED and force the reservation to APPROVED + PAID, even if
     an operator had rejected it. Payment always wins.

Steps 1-2 and 4 run in separate short transactions so no row lock is held
across the network call; step 4 re-checks for a concurrent completion.
"""

import asyncio
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from venue_booking.core.exceptions import (
    GatewayUnavailableError,
    InvalidTransitionError,
    NotFoundError,
    PaymentMismatchError,
)
from venue_booking.core.logging import get_logger
from venue_booking.core.money import ZERO, Number, to_decimal
from venue_booking.core.security import Principal, require_self_or_operator
from venue_booking.models.payment import PaymentProvider, PaymentRecord, PaymentRecordStatus
from venue_booking.models.reservation import ApprovalStatus, PaymentStatus, Reservation
from venue_booking.services.availability_service import booked_ranges
from venue_booking.services.conflict_service import ensure_no_approved_overlap
from venue_booking.services.interfaces.payment_gateway import (
    GatewayCheckout,
    GatewayVerification,
    PaymentGateway,
)
from venue_booking.services.reservation_service import get_reservation, reject_overlapping_pending

logger = get_logger(__name__)


@dataclass
class ConfirmationCheck:
    reservation: Reservation
    record: PaymentRecord
    already_completed: bool


@dataclass
class CompletionOutcome:
    reservation: Reservation
    newly_completed: bool
    previous_status: ApprovalStatus

    @property
    def newly_approved(self) -> bool:
        return self.newly_completed and self.previous_status is not ApprovalStatus.APPROVED


def order_reference(reservation_id: int) -> tuple[str, str]:
    """Purchase order id and display name sent to the gateway."""
    return f"reservation_{reservation_id}", f"Reservation #{reservation_id}"


def completed_payment(reservation: Reservation) -> Optional[PaymentRecord]:
    return next((p for p in reservation.payments if p.is_completed), None)


async def prepare_payment(
    db: AsyncSession,
    principal: Principal,
    reservation_id: int,
) -> Reservation:
    """Validate that a reservation may be paid for right now."""
    reservation = await get_reservation(db, reservation_id)
    require_self_or_operator(principal, reservation.user_id)

    if reservation.is_paid or completed_payment(reservation):
        raise InvalidTransitionError("Booking is already paid", reservation_id=reservation_id)

    if to_decimal(reservation.total_price) <= ZERO:
        raise PaymentMismatchError("Booking has no total price set", reservation_id=reservation_id)

    if reservation.approval_status is not ApprovalStatus.APPROVED:
        # Someone else got approved for these dates in the meantime
        await ensure_no_approved_overlap(
            db,
            reservation.resource_id,
            reservation.start_date,
            reservation.end_date,
            exclude_reservation_id=reservation.id,
        )
    return reservation


async def record_initiated_payment(
    db: AsyncSession,
    reservation_id: int,
    provider: PaymentProvider,
    checkout: GatewayCheckout,
    amount: Decimal,
) -> PaymentRecord:
    record = PaymentRecord(
        reservation_id=reservation_id,
        provider=provider,
        status=PaymentRecordStatus.PENDING,
        amount=to_decimal(amount),
        provider_reference=checkout.provider_reference,
    )
    db.add(record)
    await db.flush()
    await db.refresh(record)

    logger.info(
        "payment_initiated",
        reservation_id=reservation_id,
        payment_id=record.id,
        provider=provider.value,
        provider_reference=checkout.provider_reference,
        amount=str(record.amount),
    )
    return record


async def find_payment_for_confirmation(
    db: AsyncSession,
    reservation_id: int,
    provider_reference: str,
    amount: Number,
) -> ConfirmationCheck:
    reservation = await get_reservation(db, reservation_id)

    completed = completed_payment(reservation)
    if completed:
        return ConfirmationCheck(reservation=reservation, record=completed, already_completed=True)

    record = next(
        (p for p in reservation.payments if p.provider_reference == provider_reference),
        None,
    )
    if record is None:
        raise PaymentMismatchError(
            "No payment was initiated with this reference",
            reservation_id=reservation_id,
            provider_reference=provider_reference,
        )

    try:
        received = to_decimal(amount)
    except (InvalidOperation, TypeError, ValueError):
        raise PaymentMismatchError(
            "Invalid payment amount",
            reservation_id=reservation_id,
            received=repr(amount),
        )

    if received != to_decimal(record.amount):
        raise PaymentMismatchError(
            "Payment amount does not match the initiated amount",
            reservation_id=reservation_id,
            expected=str(to_decimal(record.amount)),
            received=str(received),
        )
    return ConfirmationCheck(reservation=reservation, record=record, already_completed=False)


async def find_payment_by_reference(
    db: AsyncSession,
    provider: PaymentProvider,
    provider_reference: str,
) -> PaymentRecord:
    result = await db.execute(
        select(PaymentRecord).where(
            PaymentRecord.provider == provider,
            PaymentRecord.provider_reference == provider_reference,
        )
    )
    record = result.scalar_one_or_none()
    if not record:
        raise PaymentMismatchError(
            "No payment was initiated with this reference",
            provider=provider.value,
            provider_reference=provider_reference,
        )
    return record


async def verify_payment(
    gateway: PaymentGateway,
    provider_reference: str,
    *,
    max_attempts: int = 3,
    backoff_seconds: float = 0.5,
) -> GatewayVerification:
    """Server-side lookup with retry. Raises GatewayUnavailableError when exhausted."""
    for attempt in range(1, max_attempts + 1):
        try:
            return await gateway.verify(provider_reference)
        except GatewayUnavailableError:
            logger.info(
                "payment_verify_retry",
                provider=gateway.provider.value,
                provider_reference=provider_reference,
                attempt=attempt,
            )
            if attempt == max_attempts:
                raise
            await asyncio.sleep(backoff_seconds * attempt)

    # max_attempts < 1
    raise GatewayUnavailableError("Payment verification was not attempted", provider_reference=provider_reference)


def ensure_verified(verification: GatewayVerification, record: PaymentRecord) -> None:
    if not verification.completed:
        raise PaymentMismatchError(
            f"Payment not completed, status: {verification.status}",
            provider_reference=record.provider_reference,
            status=verification.status,
        )
    if to_decimal(verification.amount) != to_decimal(record.amount):
        raise PaymentMismatchError(
            "Gateway reported a different amount than was initiated",
            provider_reference=record.provider_reference,
            expected=str(to_decimal(record.amount)),
            received=str(to_decimal(verification.amount)),
        )


async def complete_payment(
    db: AsyncSession,
    reservation_id: int,
    payment_id: int,
    verification: GatewayVerification,
    *,
    reject_overlapping: bool = True,
) -> CompletionOutcome:
    reservation = await get_reservation(db, reservation_id, for_update=True)
    previous_status = reservation.approval_status

    if completed_payment(reservation):
        # Lost a race with another confirmation of the same payment
        return CompletionOutcome(reservation, newly_completed=False, previous_status=previous_status)

    record = next((p for p in reservation.payments if p.id == payment_id), None)
    if record is None:
        raise NotFoundError("Payment not found", payment_id=payment_id)

    record.status = PaymentRecordStatus.COMPLETED
    record.transaction_id = verification.transaction_id
    reservation.payment_status = PaymentStatus.PAID
    reservation.approval_status = ApprovalStatus.APPROVED

    if previous_status is not ApprovalStatus.APPROVED:
        clashing = await booked_ranges(
            db,
            reservation.resource_id,
            reservation.start_date,
            reservation.end_date,
            statuses=(ApprovalStatus.APPROVED,),
            exclude_reservation_id=reservation.id,
        )
        if clashing:
            # Paid implies approved; surface the overlap for an operator instead of refusing money
            logger.warning(
                "payment_approved_overlap",
                reservation_id=reservation.id,
                clashing_ids=[r.reservation_id for r in clashing],
            )
        if reject_overlapping:
            await reject_overlapping_pending(db, reservation)

    await db.flush()
    await db.refresh(reservation)

    logger.info(
        "payment_completed",
        reservation_id=reservation.id,
        payment_id=record.id,
        provider=record.provider.value,
        transaction_id=record.transaction_id,
        previous_status=previous_status.value,
    )
    return CompletionOutcome(reservation, newly_completed=True, previous_status=previous_status)
