"""
Add-on service catalog.

Key design decisions:
- One table for all 9 categories, tagged by `category`, instead of one
  table and one join table per category
- `offer_price` is a discount amount subtracted from `price`, not a
  replacement price
- Unique (resource_id, category, name) keeps each item's identity unique
  per category per resource
"""

import enum
from typing import Optional

from sqlalchemy import CheckConstraint, Column, Enum, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship

from venue_booking.db.base import Base, TimestampMixin


class ServiceCategory(str, enum.Enum):
    MULTIMEDIA = "Multimedia"
    MUSICAL = "Musical"
    LUXURY = "Luxury"
    ENTERTAINMENT = "Entertainment"
    MEETING = "Meeting"
    BEAUTY_DECOR = "BeautyDecor"
    ADVENTURE = "Adventure"
    PARTY_PALACE = "PartyPalace"
    CATERING_TENT = "CateringTent"

    @classmethod
    def from_key(cls, key: str) -> Optional["ServiceCategory"]:
        try:
            return cls(key)
        except ValueError:
            return None


category_enum = Enum(
    ServiceCategory,
    native_enum=False,
    length=30,
    values_callable=lambda e: [m.value for m in e],
)


class ServiceLineItem(Base, TimestampMixin):
    __tablename__ = "service_line_items"

    id = Column(Integer, primary_key=True, index=True)
    resource_id = Column(Integer, ForeignKey("resources.id", ondelete="CASCADE"), nullable=False)
    category = Column(category_enum, nullable=False)
    name = Column(String(255), nullable=False)
    price = Column(Numeric(12, 2), nullable=False, default=0)
    offer_price = Column(Numeric(12, 2), nullable=True)

    resource = relationship("Resource", back_populates="service_items")

    __table_args__ = (
        UniqueConstraint("resource_id", "category", "name", name="uq_service_item_resource_category_name"),
        CheckConstraint("price >= 0", name="check_service_item_price_non_negative"),
        # Catalog lookups always filter by resource and category
        Index("ix_service_items_resource_category", "resource_id", "category"),
    )

    def __repr__(self) -> str:
        return f"<ServiceLineItem(id={self.id}, resource={self.resource_id}, category={self.category}, price={self.price})>"
