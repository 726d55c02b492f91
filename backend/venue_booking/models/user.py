"""
User reference model.

Accounts, passwords and tokens are managed outside the engine; it only
reads the contact details and role it needs for booking rules and
notifications.
"""

from sqlalchemy import Column, Enum, Integer, String
from sqlalchemy.orm import relationship

from venue_booking.core.security import Role
from venue_booking.db.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    firstname = Column(String(100), nullable=False)
    lastname = Column(String(100), nullable=False, default="")
    phone_number = Column(String(20), nullable=True)
    role = Column(
        Enum(Role, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=Role.USER,
    )

    reservations = relationship("Reservation", back_populates="user")

    @property
    def full_name(self) -> str:
        return f"{self.firstname} {self.lastname}".strip()

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
