"""
Caller identity for engine operations.

Token verification happens outside the engine; callers pass in an already
verified ``Principal``. This module only holds the role checks the booking
rules depend on.
"""

from dataclasses import dataclass
from enum import Enum

from venue_booking.core.exceptions import PermissionDeniedError


class Role(str, Enum):
    ADMIN = "ADMIN"
    USER = "USER"


@dataclass(frozen=True)
class Principal:
    user_id: int
    role: Role = Role.USER

    @property
    def is_operator(self) -> bool:
        return self.role is Role.ADMIN


def require_operator(principal: Principal) -> None:
    if not principal.is_operator:
        raise PermissionDeniedError("Not authorized", user_id=principal.user_id)


def require_self_or_operator(principal: Principal, user_id: int) -> None:
    if principal.user_id != user_id and not principal.is_operator:
        raise PermissionDeniedError("Not authorized", user_id=principal.user_id)
