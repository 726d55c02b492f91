"""
Availability index: the reservations that occupy a resource's calendar.

Every mutation of a resource's reservations starts with `lock_resource`,
which takes a row lock (SELECT ... FOR UPDATE) on the resource. On
PostgreSQL that row lock is the cross-process per-resource mutex that
makes conflict-check-then-insert atomic. Dialects without FOR UPDATE
(SQLite) compile it away and rely on the in-process lock and their own
single-writer model.
"""

from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from venue_booking.core.exceptions import NotFoundError
from venue_booking.core.logging import get_logger
from venue_booking.models.reservation import ApprovalStatus, Reservation
from venue_booking.models.resource import Resource

logger = get_logger(__name__)

BLOCKING_STATUSES = (ApprovalStatus.APPROVED, ApprovalStatus.PENDING)


@dataclass(frozen=True)
class BookedRange:
    reservation_id: int
    start_date: date
    end_date: date
    approval_status: ApprovalStatus


async def lock_resource(db: AsyncSession, resource_id: int) -> Resource:
    """Load a resource and hold its row lock until the transaction ends."""
    result = await db.execute(
        select(Resource).where(Resource.id == resource_id).with_for_update()
    )
    resource = result.scalar_one_or_none()
    if not resource:
        raise NotFoundError(f"Resource {resource_id} not found", resource_id=resource_id)
    return resource


async def booked_ranges(
    db: AsyncSession,
    resource_id: int,
    start: date,
    end: date,
    *,
    statuses: Iterable[ApprovalStatus] = BLOCKING_STATUSES,
    exclude_reservation_id: Optional[int] = None,
) -> list[BookedRange]:
    """
    Reservations on the resource whose range touches [start, end].

    The inclusive filter is a superset of both overlap rules, so the
    conflict resolver can make the final decision in Python.
    """
    query = select(
        Reservation.id,
        Reservation.start_date,
        Reservation.end_date,
        Reservation.approval_status,
    ).where(
        Reservation.resource_id == resource_id,
        Reservation.approval_status.in_(list(statuses)),
        Reservation.start_date <= end,
        Reservation.end_date >= start,
    )
    if exclude_reservation_id is not None:
        query = query.where(Reservation.id != exclude_reservation_id)

    result = await db.execute(query.order_by(Reservation.start_date))
    return [
        BookedRange(
            reservation_id=row.id,
            start_date=row.start_date,
            end_date=row.end_date,
            approval_status=row.approval_status,
        )
        for row in result
    ]


async def get_resource_id(db: AsyncSession, reservation_id: int) -> int:
    result = await db.execute(
        select(Reservation.resource_id).where(Reservation.id == reservation_id)
    )
    resource_id = result.scalar_one_or_none()
    if resource_id is None:
        raise NotFoundError(f"Booking {reservation_id} doesn't exist", reservation_id=reservation_id)
    return resource_id
