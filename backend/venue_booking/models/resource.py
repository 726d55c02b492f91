"""
Resource (venue) model: the bookable asset.
Read-only from the engine's point of view.
"""

from sqlalchemy import Boolean, Column, Integer, String
from sqlalchemy.orm import relationship

from venue_booking.db.base import Base, TimestampMixin


class Resource(Base, TimestampMixin):
    __tablename__ = "resources"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    address = Column(String(255), nullable=True)
    location = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    service_items = relationship("ServiceLineItem", back_populates="resource")
    reservations = relationship("Reservation", back_populates="resource")

    def __repr__(self) -> str:
        return f"<Resource(id={self.id}, title={self.title}, active={self.is_active})>"
