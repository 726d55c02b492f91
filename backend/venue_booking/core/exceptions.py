"""
Error taxonomy for the booking engine.

Business-rule errors (not found, conflicts, invalid selections, payment
mismatches, permissions) are raised synchronously to the caller and carry
enough detail to render a user-facing message. ``status_code`` is a hint for
whatever transport layer wraps the engine. Persistence failures are surfaced
as ``PersistenceError`` so callers can tell "your request is invalid" from
"try again".
"""

from enum import Enum
from typing import Any, Optional


class ConflictKind(str, Enum):
    APPROVED_OVERLAP = "approved_overlap"
    PENDING_OVERLAP = "pending_overlap"


class BookingError(Exception):
    code = "booking_error"
    status_code = 400

    def __init__(self, message: str, **detail: Any):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "detail": self.detail}


class NotFoundError(BookingError):
    code = "not_found"
    status_code = 404


class ConflictError(BookingError):
    status_code = 409

    def __init__(self, kind: ConflictKind, message: Optional[str] = None, **detail: Any):
        if message is None:
            message = (
                "An approved booking already exists on this date"
                if kind is ConflictKind.APPROVED_OVERLAP
                else "Booking overlaps with an existing pending request"
            )
        super().__init__(message, **detail)
        self.kind = kind

    @property
    def code(self) -> str:  # type: ignore[override]
        return self.kind.value


class InvalidSelectionError(BookingError):
    code = "invalid_selection"
    status_code = 422


class PaymentMismatchError(BookingError):
    code = "payment_mismatch"
    status_code = 400


class GatewayUnavailableError(BookingError):
    code = "gateway_unavailable"
    status_code = 502


class PermissionDeniedError(BookingError):
    code = "permission_denied"
    status_code = 403


class InvalidTransitionError(BookingError):
    code = "invalid_transition"
    status_code = 409


class PersistenceError(BookingError):
    code = "internal_error"
    status_code = 500
