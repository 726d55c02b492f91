"""
Read-side reservation queries: single lookup and paginated listings.
"""

from typing import Optional

from sqlalchemy import extract, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from venue_booking.core.logging import get_logger
from venue_booking.models.event_type import EventType
from venue_booking.models.reservation import Reservation
from venue_booking.models.resource import Resource

logger = get_logger(__name__)


async def _paginate(
    db: AsyncSession,
    query,
    page: int,
    page_size: int,
) -> tuple[list[Reservation], int]:
    page = max(page, 1)
    page_size = max(page_size, 1)

    # Get total count
    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar() or 0

    # Most recently touched first; id breaks ties within the same timestamp
    page_query = (
        query
        .order_by(Reservation.updated_at.desc(), Reservation.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(page_query)
    return list(result.scalars().all()), total


async def list_reservations(
    db: AsyncSession,
    *,
    resource_id: Optional[int] = None,
    search: str = "",
    month: Optional[int] = None,
    year: Optional[int] = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[Reservation], int]:
    """
    Operator listing.
    ``search`` matches resource or event type title, case-insensitively.
    ``month``/``year`` filter on the reservation's start date.
    """
    query = (
        select(Reservation)
        .join(Resource, Reservation.resource_id == Resource.id)
        .outerjoin(EventType, Reservation.event_type_id == EventType.id)
    )

    if resource_id is not None:
        query = query.where(Reservation.resource_id == resource_id)

    if search:
        pattern = f"%{search.lower()}%"
        query = query.where(
            or_(
                func.lower(Resource.title).like(pattern),
                func.lower(EventType.title).like(pattern),
            )
        )

    if month is not None:
        query = query.where(extract("month", Reservation.start_date) == month)
    if year is not None:
        query = query.where(extract("year", Reservation.start_date) == year)

    return await _paginate(db, query, page, page_size)


async def list_user_reservations(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[Reservation], int]:
    query = select(Reservation).where(Reservation.user_id == user_id)
    return await _paginate(db, query, page, page_size)
