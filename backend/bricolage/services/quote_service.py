"""
Quote service - technician terms attached to a booking.

A quote is created while the booking is ACCEPTED or ON_THE_WAY and may be
re-submitted (upsert on booking_id) until work starts. From IN_PROGRESS on it
is read-only.
"""
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from bricolage.api.middleware.error_handler import NotFoundException
from bricolage.lib.logging import get_logger
from bricolage.lib.settings import settings
from bricolage.models.bookings import Booking, BookingStatus
from bricolage.models.notifications import NotificationType
from bricolage.models.quotes import Quote
from bricolage.services.access_control import Action, authorize
from bricolage.services.booking_store import (
    booking_transaction,
    load_booking,
    load_booking_for_update,
)
from bricolage.services.errors import InvalidBookingState, InvalidInput, QuoteLocked
from bricolage.services.notification_service import (
    NotificationRequest,
    Notifier,
    dispatch_notifications,
)


logger = get_logger(__name__)

QUOTE_OPEN_STATUSES = frozenset({BookingStatus.ACCEPTED, BookingStatus.ON_THE_WAY})
QUOTE_LOCKED_STATUSES = frozenset({
    BookingStatus.IN_PROGRESS,
    BookingStatus.AWAITING_PAYMENT,
    BookingStatus.COMPLETED,
})


def _parse_price(raw: Any) -> Decimal:
    if isinstance(raw, bool) or raw is None:
        raise InvalidInput("Price must be a non-negative number", field="price", value=raw)
    try:
        price = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        raise InvalidInput("Price must be a non-negative number", field="price", value=raw)
    if not price.is_finite() or price < 0:
        raise InvalidInput("Price must be a non-negative number", field="price", value=raw)
    return price.quantize(Decimal("0.01"))


def _require_text(value: Optional[str], field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise InvalidInput(f"{field.capitalize()} is required", field=field, value=value)
    return text


class QuoteService:
    """Create, re-submit and read booking quotes."""

    def __init__(self, db: Session, notifier: Optional[Notifier] = None):
        self.db = db
        self.notifier = notifier

    def create_or_update_quote(
        self,
        booking_id: UUID,
        technician_id: UUID,
        actor_role: Any,
        conditions: str,
        equipment: str,
        price: Any,
    ) -> Quote:
        """
        Upsert the quote of a booking.

        Identical re-submissions leave the row untouched and send nothing.

        Raises:
            Forbidden: caller is not the assigned technician
            QuoteLocked: work already started
            InvalidBookingState: booking not ACCEPTED / ON_THE_WAY
            InvalidInput: empty text or negative price
        """
        conditions = _require_text(conditions, "conditions")
        equipment = _require_text(equipment, "equipment")
        amount = _parse_price(price)

        with booking_transaction(self.db, booking_id):
            booking = load_booking_for_update(self.db, booking_id)
            authorize(technician_id, actor_role, booking, Action.QUOTE)

            if booking.status in QUOTE_LOCKED_STATUSES:
                raise QuoteLocked(booking.id, booking.status)
            if booking.status not in QUOTE_OPEN_STATUSES:
                raise InvalidBookingState(
                    "A quote can only be submitted once the booking is accepted",
                    operation="quote",
                    status=booking.status,
                    payment_status=booking.payment_status,
                )

            quote = self.db.execute(
                select(Quote).where(Quote.booking_id == booking.id).with_for_update()
            ).scalar_one_or_none()

            created = quote is None
            if created:
                quote = Quote(
                    booking_id=booking.id,
                    conditions=conditions,
                    equipment=equipment,
                    price=amount,
                )
                self.db.add(quote)
                changed = True
            else:
                changed = (
                    quote.conditions != conditions
                    or quote.equipment != equipment
                    or Decimal(quote.price) != amount
                )
                if changed:
                    quote.conditions = conditions
                    quote.equipment = equipment
                    quote.price = amount

            self.db.flush()

        logger.info(
            "Quote saved",
            extra={"booking_id": str(booking.id), "quote_created": created, "changed": changed},
        )

        if changed:
            dispatch_notifications(self.notifier, [self._quote_notice(booking, amount)])
        return quote

    def get_quote(self, booking_id: UUID, actor_id: UUID, actor_role: Any) -> Quote:
        """Return the quote of a booking visible to the actor."""
        booking = load_booking(self.db, booking_id)
        authorize(actor_id, actor_role, booking, Action.READ)

        quote = self.db.execute(
            select(Quote).where(Quote.booking_id == booking_id)
        ).scalar_one_or_none()
        if quote is None:
            raise NotFoundException("Quote", str(booking_id))
        return quote

    @staticmethod
    def _quote_notice(booking: Booking, amount: Decimal) -> NotificationRequest:
        base_url = settings.frontend_url.rstrip("/")
        return NotificationRequest(
            recipient_id=booking.client_id,
            event_type=NotificationType.QUOTE_AVAILABLE,
            booking_id=booking.id,
            metadata={
                "price": amount,
                "recap_url": f"{base_url}/client/bookings/recap?bookingId={booking.id}",
            },
        )
