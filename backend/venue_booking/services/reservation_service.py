"""
Reservation state machine.

STATE MODEL
===========

Two independent axes instead of one status enum:

  approval:  PENDING -> APPROVED | REJECTED   (operator decision)
  payment:   UNPAID  -> PAID                  (gateway confirmation)

An operator can approve without payment, and a confirmed payment forces
APPROVED whatever the approval axis said before: paid implies approved.
That is why a paid reservation can no longer be rejected.

CONCURRENCY
===========

Every function here expects to run inside one transaction that already
holds the resource lock (see availability_service.lock_resource and
BookingEngine). Conflict check, order composition, insert and total price
are therefore a single unit, and two overlapping creates on the same
resource cannot both be admitted.
"""

from dataclasses import dataclass, field

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from venue_booking.core.exceptions import InvalidTransitionError, NotFoundError
from venue_booking.core.logging import get_logger
from venue_booking.core.security import Principal, require_self_or_operator
from venue_booking.models.event_type import EventType
from venue_booking.models.reservation import ApprovalStatus, PaymentStatus, Reservation, ReservationLineItem
from venue_booking.models.user import User
from venue_booking.schemas.reservation import ReservationCreate
from venue_booking.services.availability_service import lock_resource
from venue_booking.services.conflict_service import ensure_no_approved_overlap, ensure_no_conflict
from venue_booking.services.order_service import compose_order

logger = get_logger(__name__)


@dataclass
class ApprovalOutcome:
    reservation: Reservation
    previous_status: ApprovalStatus
    auto_rejected_ids: list[int] = field(default_factory=list)

    @property
    def newly_approved(self) -> bool:
        return (
            self.reservation.approval_status is ApprovalStatus.APPROVED
            and self.previous_status is not ApprovalStatus.APPROVED
        )


def initial_approval_status(principal: Principal) -> ApprovalStatus:
    """Operators book straight into APPROVED, everyone else waits for review."""
    return ApprovalStatus.APPROVED if principal.is_operator else ApprovalStatus.PENDING


async def get_reservation(
    db: AsyncSession,
    reservation_id: int,
    *,
    for_update: bool = False,
) -> Reservation:
    query = select(Reservation).where(Reservation.id == reservation_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    reservation = result.scalar_one_or_none()

    if not reservation:
        raise NotFoundError(f"Booking {reservation_id} doesn't exist", reservation_id=reservation_id)
    return reservation


async def create_reservation(
    db: AsyncSession,
    principal: Principal,
    data: ReservationCreate,
    *,
    reject_overlapping: bool = True,
) -> Reservation:
    """
    Admit a booking request: lock, check, price, persist.

    Raises:
        PermissionDeniedError: a customer booking on someone else's behalf
        NotFoundError: unknown or inactive resource, unknown event type or user
        ConflictError: overlap with an approved or pending reservation
        InvalidSelectionError: add-on not offered by the resource
    """
    require_self_or_operator(principal, data.user_id)

    resource = await lock_resource(db, data.resource_id)
    if not resource.is_active:
        raise NotFoundError(f"Resource {data.resource_id} is not available", resource_id=data.resource_id)

    if await db.get(EventType, data.event_type_id) is None:
        raise NotFoundError(f"Event type {data.event_type_id} not found", event_type_id=data.event_type_id)
    if await db.get(User, data.user_id) is None:
        raise NotFoundError(f"User {data.user_id} not found", user_id=data.user_id)

    await ensure_no_conflict(db, resource.id, data.start_date, data.end_date)

    order = await compose_order(db, resource.id, data.selections)

    reservation = Reservation(
        user_id=data.user_id,
        resource_id=resource.id,
        event_type_id=data.event_type_id,
        start_date=data.start_date,
        end_date=data.end_date,
        start_time=data.start_time,
        end_time=data.end_time,
        total_price=order.total_price,
        approval_status=initial_approval_status(principal),
        payment_status=PaymentStatus.UNPAID,
        line_items=[
            ReservationLineItem(
                service_item_id=item.service_item_id,
                category=item.category,
                name=item.name,
                price=item.price,
                offer_price=item.offer_price,
                amount=item.amount,
            )
            for item in order.line_items
        ],
        payments=[],
    )
    db.add(reservation)
    await db.flush()

    if reservation.approval_status is ApprovalStatus.APPROVED and reject_overlapping:
        await reject_overlapping_pending(db, reservation)

    await db.refresh(reservation)

    logger.info(
        "reservation_created",
        reservation_id=reservation.id,
        resource_id=resource.id,
        user_id=data.user_id,
        start_date=str(data.start_date),
        end_date=str(data.end_date),
        approval_status=reservation.approval_status.value,
        total_price=str(reservation.total_price),
        line_items=len(order.line_items),
    )
    return reservation


async def reject_overlapping_pending(db: AsyncSession, reservation: Reservation) -> list[int]:
    """
    Reject the PENDING requests that the newly approved reservation shadows.

    Uses the inclusive test: a pending request sharing only a boundary day
    with an approved one could never be approved itself.
    """
    result = await db.execute(
        select(Reservation.id).where(
            Reservation.resource_id == reservation.resource_id,
            Reservation.id != reservation.id,
            Reservation.approval_status == ApprovalStatus.PENDING,
            Reservation.start_date <= reservation.end_date,
            Reservation.end_date >= reservation.start_date,
        )
    )
    ids = list(result.scalars().all())
    if ids:
        await db.execute(
            update(Reservation)
            .where(Reservation.id.in_(ids))
            .values(approval_status=ApprovalStatus.REJECTED)
        )
        logger.info(
            "overlapping_pending_rejected",
            reservation_id=reservation.id,
            rejected_ids=ids,
        )
    return ids


async def set_approval(
    db: AsyncSession,
    reservation_id: int,
    approve: bool,
    *,
    reject_overlapping: bool = True,
) -> ApprovalOutcome:
    """
    Apply an operator decision.

    Approving re-checks the approved-overlap rule so two approved
    reservations can never overlap. Rejecting a paid reservation is refused.
    """
    reservation = await get_reservation(db, reservation_id, for_update=True)
    outcome = ApprovalOutcome(reservation=reservation, previous_status=reservation.approval_status)

    if approve:
        if reservation.approval_status is not ApprovalStatus.APPROVED:
            await ensure_no_approved_overlap(
                db,
                reservation.resource_id,
                reservation.start_date,
                reservation.end_date,
                exclude_reservation_id=reservation.id,
            )
            reservation.approval_status = ApprovalStatus.APPROVED
            if reject_overlapping:
                outcome.auto_rejected_ids = await reject_overlapping_pending(db, reservation)
    else:
        if reservation.is_paid:
            raise InvalidTransitionError(
                "A paid booking cannot be rejected",
                reservation_id=reservation.id,
            )
        reservation.approval_status = ApprovalStatus.REJECTED

    await db.flush()
    await db.refresh(reservation)

    logger.info(
        "reservation_approval_updated",
        reservation_id=reservation.id,
        previous_status=outcome.previous_status.value,
        approval_status=reservation.approval_status.value,
        auto_rejected=len(outcome.auto_rejected_ids),
    )
    return outcome


async def delete_reservation(db: AsyncSession, reservation_id: int) -> None:
    """Hard delete. Line items and payment records go with it."""
    reservation = await get_reservation(db, reservation_id, for_update=True)
    await db.delete(reservation)
    await db.flush()

    logger.info(
        "reservation_deleted",
        reservation_id=reservation_id,
        resource_id=reservation.resource_id,
    )
