from sqlalchemy import Column, Integer, String

from venue_booking.db.base import Base, TimestampMixin


class EventType(Base, TimestampMixin):
    __tablename__ = "event_types"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(150), nullable=False, unique=True)

    def __repr__(self) -> str:
        return f"<EventType(id={self.id}, title={self.title})>"
