"""
Excel report of reservations created in a given month.
"""

import io
from datetime import datetime
from typing import Optional

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from sqlalchemy import extract, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from venue_booking.core.logging import get_logger
from venue_booking.models.event_type import EventType
from venue_booking.models.reservation import ApprovalStatus, Reservation
from venue_booking.models.resource import Resource
from venue_booking.models.user import User

logger = get_logger(__name__)

SHEET_TITLE = "Reservations Report"

COLUMNS = [
    ("ID", 8),
    ("User Name", 25),
    ("Email", 30),
    ("Resource", 30),
    ("Event Type", 20),
    ("Start Date", 14),
    ("End Date", 14),
    ("Total Price", 14),
    ("Status", 12),
    ("Created At", 20),
]

HEADER_FONT = Font(bold=True, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="366092", end_color="366092", fill_type="solid")


async def reservations_for_export(
    db: AsyncSession,
    month: int,
    year: int,
    search: str = "",
    resource_id: Optional[int] = None,
) -> list[Reservation]:
    query = (
        select(Reservation)
        .join(User, Reservation.user_id == User.id)
        .join(Resource, Reservation.resource_id == Resource.id)
        .outerjoin(EventType, Reservation.event_type_id == EventType.id)
        .where(
            extract("month", Reservation.created_at) == month,
            extract("year", Reservation.created_at) == year,
        )
    )

    if resource_id is not None:
        query = query.where(Reservation.resource_id == resource_id)

    if search:
        pattern = f"%{search.lower()}%"
        query = query.where(
            or_(
                func.lower(User.firstname).like(pattern),
                func.lower(User.lastname).like(pattern),
                func.lower(User.email).like(pattern),
                func.lower(Resource.title).like(pattern),
                func.lower(EventType.title).like(pattern),
            )
        )

    result = await db.execute(query.order_by(Reservation.created_at.desc(), Reservation.id.desc()))
    return list(result.scalars().all())


def _row(reservation: Reservation) -> list:
    created_at: Optional[datetime] = reservation.created_at
    return [
        reservation.id,
        reservation.user.full_name if reservation.user else "",
        reservation.user.email if reservation.user else "",
        reservation.resource.title if reservation.resource else "",
        reservation.event_type.title if reservation.event_type else "",
        reservation.start_date.isoformat(),
        reservation.end_date.isoformat(),
        float(reservation.total_price),
        "Approved" if reservation.approval_status is ApprovalStatus.APPROVED else "Pending",
        created_at.strftime("%Y-%m-%d %H:%M") if created_at else "",
    ]


def build_workbook(reservations: list[Reservation]) -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = SHEET_TITLE

    for col, (header, width) in enumerate(COLUMNS, 1):
        cell = sheet.cell(row=1, column=col, value=header)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal="center", vertical="center")
        sheet.column_dimensions[get_column_letter(col)].width = width

    for reservation in reservations:
        sheet.append(_row(reservation))

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


async def export_reservations_xlsx(
    db: AsyncSession,
    month: int,
    year: int,
    search: str = "",
    resource_id: Optional[int] = None,
) -> bytes:
    reservations = await reservations_for_export(db, month, year, search, resource_id)
    logger.info("reservations_exported", month=month, year=year, rows=len(reservations))
    return build_workbook(reservations)
