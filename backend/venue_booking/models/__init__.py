from venue_booking.models.user import User
from venue_booking.models.resource import Resource
from venue_booking.models.event_type import EventType
from venue_booking.models.service_item import ServiceCategory, ServiceLineItem
from venue_booking.models.reservation import ApprovalStatus, PaymentStatus, Reservation, ReservationLineItem
from venue_booking.models.payment import PaymentProvider, PaymentRecord, PaymentRecordStatus

__all__ = [
    "User", "Resource", "EventType",
    "ServiceCategory", "ServiceLineItem",
    "ApprovalStatus", "PaymentStatus", "Reservation", "ReservationLineItem",
    "PaymentProvider", "PaymentRecord", "PaymentRecordStatus",
]
