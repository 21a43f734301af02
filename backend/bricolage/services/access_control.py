"""
Access control for booking operations.

Pure predicates over (actor, booking, action): no database access and no side
effects, so they can be exercised without persistence. Every booking, quote,
payment and review operation consults `authorize` before touching state.
"""
import enum
from typing import Any, Protocol
from uuid import UUID

from bricolage.models.users import UserRole
from bricolage.services.errors import Forbidden


class Action(str, enum.Enum):
    """Operations an actor can attempt on a booking."""
    READ = "READ"
    TRANSITION = "TRANSITION"
    QUOTE = "QUOTE"
    SUBMIT_PAYMENT = "SUBMIT_PAYMENT"
    CONFIRM_PAYMENT = "CONFIRM_PAYMENT"
    OVERRIDE_PAYMENT = "OVERRIDE_PAYMENT"
    REVIEW = "REVIEW"


class BookingParties(Protocol):
    """Anything exposing the two parties of a booking."""
    client_id: Any
    technician_id: Any


CLIENT_ACTIONS = frozenset({
    Action.READ,
    Action.TRANSITION,
    Action.SUBMIT_PAYMENT,
    Action.REVIEW,
})

TECHNICIAN_ACTIONS = frozenset({
    Action.READ,
    Action.TRANSITION,
    Action.QUOTE,
    Action.CONFIRM_PAYMENT,
    Action.REVIEW,
})

# Admins see everything but only act through the payment override
ADMIN_ACTIONS = frozenset({
    Action.READ,
    Action.OVERRIDE_PAYMENT,
})


def parse_role(role: Any) -> UserRole:
    """Validate a role coming from the identity layer."""
    if isinstance(role, UserRole):
        return role
    try:
        return UserRole(str(role).upper())
    except ValueError:
        raise Forbidden(f"Unknown actor role '{role}'", actor_role=role)


def _same_id(left: Any, right: Any) -> bool:
    if left is None or right is None:
        return False
    return str(left) == str(right)


def is_allowed(actor_id: UUID, actor_role: Any, booking: BookingParties, action: Action) -> bool:
    """Return True when the actor may perform `action` on `booking`."""
    try:
        role = parse_role(actor_role)
    except Forbidden:
        return False

    if role is UserRole.ADMIN:
        return action in ADMIN_ACTIONS
    if role is UserRole.CLIENT:
        return action in CLIENT_ACTIONS and _same_id(booking.client_id, actor_id)
    if role is UserRole.TECHNICIAN:
        return action in TECHNICIAN_ACTIONS and _same_id(booking.technician_id, actor_id)
    return False


def authorize(actor_id: UUID, actor_role: Any, booking: BookingParties, action: Action) -> None:
    """
    Raise Forbidden unless the actor may perform `action` on `booking`.

    Args:
        actor_id: Identity of the caller
        actor_role: CLIENT, TECHNICIAN or ADMIN
        booking: Booking (or any object with client_id/technician_id)
        action: Operation being attempted

    Raises:
        Forbidden: with actor_role, action and booking_id in its details
    """
    if not is_allowed(actor_id, actor_role, booking, action):
        raise Forbidden(
            "You are not allowed to perform this action on this booking",
            actor_role=actor_role,
            action=action,
            booking_id=getattr(booking, "id", None),
        )
