"""
Conflict resolver: may a date range be admitted next to the existing
reservations of a resource?

The two overlap tests are deliberately asymmetric:

  APPROVED  existing.start <= candidate.end AND existing.end >= candidate.start
            (inclusive: an approved booking blocks even a request that only
            shares a boundary day)
  PENDING   existing.start <  candidate.end AND existing.end >  candidate.start
            (strict: pending requests may queue at shared boundaries and an
            operator arbitrates)

REJECTED reservations never block. The approved check wins when both apply.
"""

from datetime import date
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from venue_booking.core.exceptions import ConflictError, ConflictKind
from venue_booking.core.logging import get_logger
from venue_booking.models.reservation import ApprovalStatus
from venue_booking.services.availability_service import BookedRange, booked_ranges

logger = get_logger(__name__)


def overlaps_inclusive(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    return a_start <= b_end and a_end >= b_start


def overlaps_strict(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    return a_start < b_end and a_end > b_start


def resolve_conflict(
    existing: Iterable[BookedRange],
    start: date,
    end: date,
) -> Optional[ConflictKind]:
    """Pure decision function. Returns None to admit."""
    existing = list(existing)

    for booked in existing:
        if booked.approval_status is ApprovalStatus.APPROVED and overlaps_inclusive(
            booked.start_date, booked.end_date, start, end
        ):
            return ConflictKind.APPROVED_OVERLAP

    for booked in existing:
        if booked.approval_status is ApprovalStatus.PENDING and overlaps_strict(
            booked.start_date, booked.end_date, start, end
        ):
            return ConflictKind.PENDING_OVERLAP

    return None


async def check_conflict(
    db: AsyncSession,
    resource_id: int,
    start: date,
    end: date,
    *,
    exclude_reservation_id: Optional[int] = None,
) -> Optional[ConflictKind]:
    existing = await booked_ranges(
        db, resource_id, start, end, exclude_reservation_id=exclude_reservation_id
    )
    return resolve_conflict(existing, start, end)


async def ensure_no_conflict(
    db: AsyncSession,
    resource_id: int,
    start: date,
    end: date,
    *,
    exclude_reservation_id: Optional[int] = None,
) -> None:
    kind = await check_conflict(
        db, resource_id, start, end, exclude_reservation_id=exclude_reservation_id
    )
    if kind is not None:
        logger.warning(
            "reservation_conflict",
            resource_id=resource_id,
            start_date=str(start),
            end_date=str(end),
            kind=kind.value,
        )
        raise ConflictError(
            kind,
            resource_id=resource_id,
            start_date=start.isoformat(),
            end_date=end.isoformat(),
        )


async def ensure_no_approved_overlap(
    db: AsyncSession,
    resource_id: int,
    start: date,
    end: date,
    *,
    exclude_reservation_id: Optional[int] = None,
) -> None:
    """Guard used before a reservation becomes APPROVED."""
    existing = await booked_ranges(
        db,
        resource_id,
        start,
        end,
        statuses=(ApprovalStatus.APPROVED,),
        exclude_reservation_id=exclude_reservation_id,
    )
    if existing:
        logger.warning(
            "approval_conflict",
            resource_id=resource_id,
            blocking_reservation_id=existing[0].reservation_id,
        )
        raise ConflictError(
            ConflictKind.APPROVED_OVERLAP,
            resource_id=resource_id,
            start_date=start.isoformat(),
            end_date=end.isoformat(),
            blocking_reservation_id=existing[0].reservation_id,
        )
