"""
Reservation model: a request to occupy a resource for a date range.

Key design decisions:
- Approval and payment are two independent columns, not one status enum:
  an operator can approve without payment, and a gateway can confirm payment
  before any operator has looked at the request
- Selected add-ons are stored as ReservationLineItem rows that snapshot the
  catalog price at booking time, so total_price always equals the sum of the
  persisted line items even if the catalog is repriced later
- Line items and payment records are owned and cascade-deleted with the
  reservation
- Composite index on (resource_id, start_date, end_date) backs the
  overlap check, the hottest query in the engine
"""

import enum
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Time,
)
from sqlalchemy.orm import relationship

from venue_booking.db.base import Base, TimestampMixin
from venue_booking.models.service_item import category_enum


class ApprovalStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class PaymentStatus(str, enum.Enum):
    UNPAID = "UNPAID"
    PAID = "PAID"


def _values(e):
    return [m.value for m in e]


class Reservation(Base, TimestampMixin):
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    resource_id = Column(Integer, ForeignKey("resources.id"), nullable=False)
    event_type_id = Column(Integer, ForeignKey("event_types.id"), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)
    total_price = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    approval_status = Column(
        Enum(ApprovalStatus, native_enum=False, length=20, values_callable=_values),
        nullable=False,
        default=ApprovalStatus.PENDING,
    )
    payment_status = Column(
        Enum(PaymentStatus, native_enum=False, length=20, values_callable=_values),
        nullable=False,
        default=PaymentStatus.UNPAID,
    )

    # Relationships
    user = relationship("User", back_populates="reservations", lazy="selectin")
    resource = relationship("Resource", back_populates="reservations", lazy="selectin")
    event_type = relationship("EventType", lazy="selectin")
    line_items = relationship(
        "ReservationLineItem",
        back_populates="reservation",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
        order_by="ReservationLineItem.id",
    )
    payments = relationship(
        "PaymentRecord",
        back_populates="reservation",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
        order_by="PaymentRecord.id",
    )

    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="check_reservation_date_order"),
        CheckConstraint("total_price >= 0", name="check_reservation_total_non_negative"),
        Index("ix_reservations_resource_dates", "resource_id", "start_date", "end_date"),
        # Dashboard buckets by start_date
        Index("ix_reservations_start_date", "start_date"),
    )

    @property
    def is_approved(self) -> bool:
        return self.approval_status is ApprovalStatus.APPROVED

    @property
    def is_paid(self) -> bool:
        return self.payment_status is PaymentStatus.PAID

    def __repr__(self) -> str:
        return (
            f"<Reservation(id={self.id}, resource={self.resource_id}, "
            f"{self.start_date}..{self.end_date}, {self.approval_status}/{self.payment_status})>"
        )


class ReservationLineItem(Base):
    __tablename__ = "reservation_line_items"

    id = Column(Integer, primary_key=True)
    reservation_id = Column(
        Integer, ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    service_item_id = Column(
        Integer, ForeignKey("service_line_items.id", ondelete="RESTRICT"), nullable=False
    )
    category = Column(category_enum, nullable=False)
    name = Column(String(255), nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    offer_price = Column(Numeric(12, 2), nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)

    reservation = relationship("Reservation", back_populates="line_items")

    __table_args__ = (
        CheckConstraint("amount >= 0", name="check_line_item_amount_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<ReservationLineItem(reservation={self.reservation_id}, item={self.service_item_id}, amount={self.amount})>"
