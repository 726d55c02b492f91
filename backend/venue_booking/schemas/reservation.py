"""
Pydantic schemas for reservation request/response validation.
"""

from collections import defaultdict
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

from venue_booking.models.payment import PaymentProvider, PaymentRecordStatus
from venue_booking.models.reservation import ApprovalStatus, PaymentStatus
from venue_booking.models.service_item import ServiceCategory


class ReservationCreate(BaseModel):
    resource_id: int
    user_id: int
    event_type_id: int
    start_date: date
    end_date: date
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    # category name -> selected service line item ids; validated by the order composer
    selections: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def check_date_range(self) -> "ReservationCreate":
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class LineItemResponse(BaseModel):
    service_item_id: int
    category: ServiceCategory
    name: str
    price: Decimal
    offer_price: Optional[Decimal]
    amount: Decimal

    model_config = {"from_attributes": True}


class PaymentResponse(BaseModel):
    id: int
    provider: PaymentProvider
    status: PaymentRecordStatus
    amount: Decimal
    provider_reference: str
    transaction_id: Optional[str]

    model_config = {"from_attributes": True}


class ReservationResponse(BaseModel):
    id: int
    user_id: int
    resource_id: int
    event_type_id: int
    start_date: date
    end_date: date
    start_time: Optional[time]
    end_time: Optional[time]
    total_price: Decimal
    approval_status: ApprovalStatus
    payment_status: PaymentStatus
    line_items: list[LineItemResponse] = []
    payments: list[PaymentResponse] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @property
    def services(self) -> dict[ServiceCategory, list[LineItemResponse]]:
        """Line items grouped by category, in selection order."""
        grouped: dict[ServiceCategory, list[LineItemResponse]] = defaultdict(list)
        for item in self.line_items:
            grouped[item.category].append(item)
        return dict(grouped)


class ReservationListResponse(BaseModel):
    reservations: list[ReservationResponse]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return -(-self.total // self.page_size) if self.page_size else 0


class MonthBucket(BaseModel):
    month: str
    year: int
    approved: int = 0
    pending: int = 0


class PaymentInitiationResponse(BaseModel):
    reservation_id: int
    provider: PaymentProvider
    provider_reference: str
    redirect_url: str
    amount: Decimal
