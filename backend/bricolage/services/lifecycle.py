"""
Booking lifecycle engine.

Owns the transition table and is the only code path that changes
`Booking.status`. A request is checked in this order:

1. the (current, requested) edge exists in TRANSITIONS, else InvalidTransition;
2. the caller's role is the role that owns the edge, else Forbidden;
3. the caller is the booking's own client/technician (access control);
4. the edge guard holds (QuoteRequired, FinalPriceRequired, ...).

Only then are the edge's side effects applied and the row written. The
counter-party is notified after commit.
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from bricolage.lib.logging import get_logger
from bricolage.lib.metrics import get_metrics_collector
from bricolage.models.bookings import Booking, BookingStatus, PaymentStatus
from bricolage.models.notifications import NotificationType
from bricolage.services.access_control import Action, authorize, parse_role
from bricolage.services.booking_store import (
    booking_transaction,
    load_booking_for_update,
    quote_exists,
)
from bricolage.services.errors import (
    Forbidden,
    FinalPriceRequired,
    InvalidBookingState,
    InvalidInput,
    InvalidTransition,
    PaymentNotConfirmed,
    QuoteRequired,
)
from bricolage.services.notification_service import (
    NotificationRequest,
    Notifier,
    dispatch_notifications,
)


logger = get_logger(__name__)

# Role used when the payment workflow drives a transition
SYSTEM_ROLE = "SYSTEM"

Guard = Callable[[Session, Booking, dict], None]
Effect = Callable[[Booking, dict], None]


@dataclass(frozen=True)
class TransitionRule:
    """One edge of the state machine."""
    actor: str
    event: NotificationType
    guard: Optional[Guard] = None
    effect: Optional[Effect] = None


# ===== Guards =====

def _require_quote(db: Session, booking: Booking, payload: dict) -> None:
    if not quote_exists(db, booking.id):
        raise QuoteRequired(booking.id, booking.status)


def parse_final_price(booking_id: Any, raw: Any) -> Decimal:
    """Validate the final price sent with the request for payment."""
    if raw is None or raw == "":
        raise FinalPriceRequired(booking_id, raw)
    if isinstance(raw, bool):
        raise InvalidInput("Final price must be a number", field="final_price", value=raw)
    try:
        price = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        raise InvalidInput("Final price must be a number", field="final_price", value=raw)
    if not price.is_finite() or price <= 0:
        raise FinalPriceRequired(booking_id, raw)
    return price.quantize(Decimal("0.01"))


def _require_final_price(db: Session, booking: Booking, payload: dict) -> None:
    parse_final_price(booking.id, payload.get("final_price"))


def _require_unpaid(db: Session, booking: Booking, payload: dict) -> None:
    if booking.payment_status == PaymentStatus.PAID:
        raise InvalidBookingState(
            "Payment is already confirmed, the booking cannot go back to work",
            operation="transition",
            status=booking.status,
            payment_status=booking.payment_status,
        )


def _require_paid(db: Session, booking: Booking, payload: dict) -> None:
    if booking.payment_status != PaymentStatus.PAID:
        raise PaymentNotConfirmed(booking.id, booking.payment_status)


# ===== Effects =====

def _clear_payment(booking: Booking) -> None:
    booking.payment_status = PaymentStatus.UNPAID
    booking.payment_method = None
    booking.receipt_url = None
    booking.transaction_id = None


def _set_final_price(booking: Booking, payload: dict) -> None:
    booking.final_price = parse_final_price(booking.id, payload.get("final_price"))
    _clear_payment(booking)


def _reopen_work(booking: Booking, payload: dict) -> None:
    booking.final_price = None
    _clear_payment(booking)


S = BookingStatus
CLIENT = "CLIENT"
TECHNICIAN = "TECHNICIAN"

TRANSITIONS: dict[tuple[BookingStatus, BookingStatus], TransitionRule] = {
    (S.PENDING, S.ACCEPTED): TransitionRule(TECHNICIAN, NotificationType.BOOKING_ACCEPTED),
    (S.PENDING, S.DECLINED): TransitionRule(TECHNICIAN, NotificationType.BOOKING_DECLINED),
    (S.PENDING, S.CANCELLED): TransitionRule(CLIENT, NotificationType.BOOKING_CANCELLED),
    (S.ACCEPTED, S.CANCELLED): TransitionRule(CLIENT, NotificationType.BOOKING_CANCELLED),
    (S.ACCEPTED, S.ON_THE_WAY): TransitionRule(TECHNICIAN, NotificationType.BOOKING_ON_THE_WAY),
    (S.ON_THE_WAY, S.ACCEPTED): TransitionRule(TECHNICIAN, NotificationType.BOOKING_STATUS_REVERTED),
    (S.ON_THE_WAY, S.IN_PROGRESS): TransitionRule(
        TECHNICIAN, NotificationType.BOOKING_IN_PROGRESS, guard=_require_quote,
    ),
    (S.IN_PROGRESS, S.ON_THE_WAY): TransitionRule(TECHNICIAN, NotificationType.BOOKING_STATUS_REVERTED),
    (S.IN_PROGRESS, S.AWAITING_PAYMENT): TransitionRule(
        TECHNICIAN,
        NotificationType.BOOKING_AWAITING_PAYMENT,
        guard=_require_final_price,
        effect=_set_final_price,
    ),
    (S.AWAITING_PAYMENT, S.IN_PROGRESS): TransitionRule(
        TECHNICIAN,
        NotificationType.BOOKING_STATUS_REVERTED,
        guard=_require_unpaid,
        effect=_reopen_work,
    ),
    (S.AWAITING_PAYMENT, S.COMPLETED): TransitionRule(
        SYSTEM_ROLE, NotificationType.BOOKING_COMPLETED, guard=_require_paid,
    ),
}


def parse_status(value: Any) -> BookingStatus:
    """Validate a requested status at the boundary."""
    if isinstance(value, BookingStatus):
        return value
    try:
        return BookingStatus(str(value).upper())
    except ValueError:
        raise InvalidInput(f"Unknown booking status '{value}'", field="status", value=value)


def allowed_targets(current: BookingStatus, role: str) -> list[BookingStatus]:
    """Statuses `role` may request from `current` (ignoring ownership and guards)."""
    return [to for (frm, to), rule in TRANSITIONS.items() if frm == current and rule.actor == role]


class BookingLifecycleEngine:
    """
    Validates and applies booking status transitions.

    Stateless apart from the request-scoped session; concurrency safety comes
    from the row lock and version check in `booking_store`.
    """

    def __init__(self, db: Session, notifier: Optional[Notifier] = None):
        self.db = db
        self.notifier = notifier

    def transition(
        self,
        booking_id: UUID,
        actor_id: UUID,
        actor_role: Any,
        requested_status: Any,
        payload: Optional[dict] = None,
    ) -> Booking:
        """
        Move a booking to `requested_status` on behalf of an actor.

        Args:
            booking_id: Booking to change
            actor_id: Caller identity
            actor_role: CLIENT, TECHNICIAN or ADMIN
            requested_status: Target status
            payload: Extra data for the edge ({"final_price": ...})

        Returns:
            The updated booking

        Raises:
            InvalidTransition, Forbidden, QuoteRequired, FinalPriceRequired,
            PaymentNotConfirmed, InvalidBookingState, NotFoundException
        """
        role = parse_role(actor_role)
        requested = parse_status(requested_status)

        try:
            with booking_transaction(self.db, booking_id):
                booking = load_booking_for_update(self.db, booking_id)
                notice = self.apply(booking, actor_id, role.value, requested, payload or {})
        except Exception as exc:
            code = getattr(exc, "code", None)
            if code is not None:
                get_metrics_collector().increment_rejections("transition", code)
            raise

        dispatch_notifications(self.notifier, [notice])
        return booking

    def apply(
        self,
        booking: Booking,
        actor_id: Optional[UUID],
        role: str,
        requested: BookingStatus,
        payload: dict,
    ) -> NotificationRequest:
        """
        Apply one transition to a locked booking inside the caller's transaction.

        Used directly by the payment workflow with `SYSTEM_ROLE`.
        """
        current = booking.status
        rule = TRANSITIONS.get((current, requested))
        if rule is None:
            raise InvalidTransition(current, requested, role)

        if rule.actor != role:
            raise Forbidden(
                f"{role} cannot move a booking from {current.value} to {requested.value}",
                actor_role=role,
                action=Action.TRANSITION,
                booking_id=booking.id,
            )

        if role != SYSTEM_ROLE:
            authorize(actor_id, role, booking, Action.TRANSITION)

        if booking.technician_id is None:
            raise InvalidBookingState(
                "No technician is assigned to this booking",
                operation="transition",
                status=current,
                payment_status=booking.payment_status,
            )

        if rule.guard is not None:
            rule.guard(self.db, booking, payload)

        if rule.effect is not None:
            rule.effect(booking, payload)
        booking.status = requested

        get_metrics_collector().increment_transitions(current.value, requested.value, role)
        logger.info(
            "Booking status changed",
            extra={
                "booking_id": str(booking.id),
                "old_status": current.value,
                "new_status": requested.value,
                "actor_id": str(actor_id) if actor_id else None,
                "actor_role": role,
            },
        )

        return self._notice_for(booking, current, requested, rule)

    @staticmethod
    def _notice_for(
        booking: Booking,
        old_status: BookingStatus,
        new_status: BookingStatus,
        rule: TransitionRule,
    ) -> NotificationRequest:
        # Client-driven edges concern the technician; everything else the client
        recipient = booking.technician_id if rule.actor == CLIENT else booking.client_id
        return NotificationRequest(
            recipient_id=recipient,
            event_type=rule.event,
            booking_id=booking.id,
            metadata={
                "old_status": old_status.value,
                "new_status": new_status.value,
                "final_price": booking.final_price,
            },
        )
