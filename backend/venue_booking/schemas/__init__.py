from venue_booking.schemas.reservation import (
    LineItemResponse,
    MonthBucket,
    PaymentInitiationResponse,
    PaymentResponse,
    ReservationCreate,
    ReservationListResponse,
    ReservationResponse,
)

__all__ = [
    "ReservationCreate", "ReservationResponse", "ReservationListResponse",
    "LineItemResponse", "PaymentResponse",
    "MonthBucket", "PaymentInitiationResponse",
]
