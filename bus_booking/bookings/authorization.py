"""Capability check for booking status transitions.

``can_transition`` is the only place that decides who may move a booking
from one status to another; the lifecycle manager asks it before every
write.
"""

from dataclasses import dataclass
from typing import Optional

from bus_booking.auth.schemas import ADMIN_ROLES
from bus_booking.bookings.schemas import ActorKind, BookingStatus


@dataclass(frozen=True)
class Actor:
    kind: ActorKind
    id: Optional[int] = None
    role: Optional[str] = None

    @classmethod
    def system(cls) -> "Actor":
        return cls(kind=ActorKind.SYSTEM)

    @classmethod
    def user(cls, user_id: int) -> "Actor":
        return cls(kind=ActorKind.USER, id=user_id, role="customer")

    @classmethod
    def admin(cls, admin_id: int, role: str = "admin") -> "Actor":
        return cls(kind=ActorKind.ADMIN, id=admin_id, role=role)

    @classmethod
    def from_principal(cls, principal) -> "Actor":
        if principal.kind == "admin":
            return cls.admin(principal.id, principal.role)
        return cls.user(principal.id)

    @property
    def is_admin(self) -> bool:
        return self.kind == ActorKind.ADMIN and self.role in ADMIN_ROLES


# (from, to) pairs each actor kind may perform
_USER_TRANSITIONS = {
    (BookingStatus.PENDING, BookingStatus.CANCELLED),
}

_SYSTEM_TRANSITIONS = {
    (BookingStatus.PENDING, BookingStatus.PAID),
    (BookingStatus.PENDING, BookingStatus.CANCELLED),
    (BookingStatus.PAID, BookingStatus.COMPLETED),
}

_ADMIN_TRANSITIONS = _SYSTEM_TRANSITIONS | {
    (BookingStatus.PAID, BookingStatus.CANCELLED),
}


def allowed_transitions(actor: Actor) -> set:
    if actor.kind == ActorKind.SYSTEM:
        return _SYSTEM_TRANSITIONS
    if actor.is_admin:
        return _ADMIN_TRANSITIONS
    if actor.kind == ActorKind.USER:
        return _USER_TRANSITIONS
    return set()


def can_transition(actor: Actor, booking, target_status: BookingStatus) -> bool:
    """Whether ``actor`` may move ``booking`` to ``target_status``."""
    current = BookingStatus(booking.status)
    if (current, BookingStatus(target_status)) not in allowed_transitions(actor):
        return False
    if actor.kind == ActorKind.USER and booking.user_id != actor.id:
        return False
    return True
