"""
Dashboard aggregation: approved vs. pending reservations per month.

The window is twelve calendar months starting at the current month.
Reservations are bucketed by start_date. Anything that is not APPROVED is
counted as pending, rejected requests included; reporting has always
worked that way and consumers rely on the totals.
"""

from datetime import date
from typing import Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from venue_booking.models.reservation import ApprovalStatus, Reservation
from venue_booking.schemas.reservation import MonthBucket

WINDOW_MONTHS = 12


def month_window(today: date, months: int = WINDOW_MONTHS) -> list[tuple[date, date]]:
    """[(month_start, month_end), ...] beginning with the month of ``today``."""
    first = today.replace(day=1)
    window = []
    for offset in range(months):
        start = first + relativedelta(months=offset)
        end = start + relativedelta(months=1, days=-1)
        window.append((start, end))
    return window


async def monthly_approval_counts(
    db: AsyncSession,
    resource_id: Optional[int] = None,
    today: Optional[date] = None,
) -> list[MonthBucket]:
    window = month_window(today or date.today())
    buckets = {
        (start.year, start.month): MonthBucket(month=start.strftime("%b"), year=start.year)
        for start, _ in window
    }

    query = select(Reservation.start_date, Reservation.approval_status).where(
        Reservation.start_date >= window[0][0],
        Reservation.start_date <= window[-1][1],
    )
    if resource_id is not None:
        query = query.where(Reservation.resource_id == resource_id)

    result = await db.execute(query)
    for start_date, approval_status in result:
        bucket = buckets.get((start_date.year, start_date.month))
        if bucket is None:
            continue
        if approval_status is ApprovalStatus.APPROVED:
            bucket.approved += 1
        else:
            bucket.pending += 1

    return list(buckets.values())
