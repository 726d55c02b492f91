"""
Payment record: one payment attempt against a reservation.

A record is created PENDING only after the gateway has accepted the
initiation, and moves to COMPLETED only after the gateway's server-side
lookup confirms it. (provider, provider_reference) is unique so retried
confirmations can never create a second row.
"""

import enum

from sqlalchemy import Column, Enum, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship

from venue_booking.db.base import Base, TimestampMixin


class PaymentProvider(str, enum.Enum):
    KHALTI = "KHALTI"
    STRIPE = "STRIPE"


class PaymentRecordStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"


def _values(e):
    return [m.value for m in e]


class PaymentRecord(Base, TimestampMixin):
    __tablename__ = "payment_records"

    id = Column(Integer, primary_key=True, index=True)
    reservation_id = Column(
        Integer, ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    provider = Column(
        Enum(PaymentProvider, native_enum=False, length=20, values_callable=_values),
        nullable=False,
    )
    status = Column(
        Enum(PaymentRecordStatus, native_enum=False, length=20, values_callable=_values),
        nullable=False,
        default=PaymentRecordStatus.PENDING,
    )
    amount = Column(Numeric(12, 2), nullable=False)
    provider_reference = Column(String(255), nullable=False)
    transaction_id = Column(String(255), nullable=True)

    reservation = relationship("Reservation", back_populates="payments")

    __table_args__ = (
        UniqueConstraint("provider", "provider_reference", name="uq_payment_provider_reference"),
    )

    @property
    def is_completed(self) -> bool:
        return self.status is PaymentRecordStatus.COMPLETED

    def __repr__(self) -> str:
        return f"<PaymentRecord(id={self.id}, reservation={self.reservation_id}, {self.provider}:{self.status})>"
