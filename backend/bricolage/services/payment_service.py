"""
Payment confirmation workflow.

Tracks `payment_status` (UNPAID → PENDING → PAID) alongside the booking status
while a booking sits in AWAITING_PAYMENT:

1. The client declares how they paid (`submit_payment_proof`): UNPAID → PENDING.
2. The technician confirms receipt (`confirm_payment`): → PAID, and in the same
   transaction the lifecycle engine moves AWAITING_PAYMENT → COMPLETED. Cash
   handed over in person can be confirmed straight from UNPAID.
3. Administrators can force any payment status (`set_payment_status`) for
   support and disputes; every override is written to the payment audit log
   in the same transaction and to the audit logger.
"""
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from bricolage.lib.logging import get_logger, get_audit_logger, get_correlation_id
from bricolage.lib.metrics import get_metrics_collector
from bricolage.models.bookings import Booking, BookingStatus, PaymentMethod, PaymentStatus
from bricolage.models.notifications import NotificationType
from bricolage.models.payment_audit import PaymentAuditLog
from bricolage.services.access_control import Action, authorize
from bricolage.services.booking_store import booking_transaction, load_booking_for_update
from bricolage.services.errors import InvalidBookingState, InvalidInput, ReasonRequired
from bricolage.services.lifecycle import SYSTEM_ROLE, BookingLifecycleEngine
from bricolage.services.notification_service import (
    NotificationRequest,
    Notifier,
    dispatch_notifications,
)


logger = get_logger(__name__)
audit_logger = get_audit_logger()

RECEIPT_METHODS = frozenset({PaymentMethod.WAFACASH, PaymentMethod.BANK_TRANSFER})


def parse_payment_method(value: Any) -> PaymentMethod:
    if isinstance(value, PaymentMethod):
        return value
    try:
        return PaymentMethod(str(value).upper())
    except ValueError:
        raise InvalidInput(f"Invalid payment method '{value}'", field="payment_method", value=value)


def parse_payment_status(value: Any) -> PaymentStatus:
    if isinstance(value, PaymentStatus):
        return value
    try:
        return PaymentStatus(str(value).upper())
    except ValueError:
        raise InvalidInput(f"Invalid payment status '{value}'", field="payment_status", value=value)


class PaymentService:
    """Payment proof, confirmation and administrative override."""

    def __init__(self, db: Session, notifier: Optional[Notifier] = None):
        self.db = db
        self.notifier = notifier
        self.engine = BookingLifecycleEngine(db, notifier)

    def submit_payment_proof(
        self,
        booking_id: UUID,
        client_id: UUID,
        actor_role: Any,
        method: Any,
        receipt_url: Optional[str] = None,
        transaction_id: Optional[str] = None,
    ) -> Booking:
        """
        Record how the client paid and wait for the technician's confirmation.

        CARD payments need a transaction id, WAFACASH and BANK_TRANSFER a
        receipt. The booking must be AWAITING_PAYMENT with nothing declared yet.
        """
        payment_method = parse_payment_method(method)
        receipt_url = (receipt_url or "").strip() or None
        transaction_id = (transaction_id or "").strip() or None

        if payment_method is PaymentMethod.CARD and not transaction_id:
            raise InvalidInput(
                "A transaction id is required for card payments",
                field="transaction_id",
            )
        if payment_method in RECEIPT_METHODS and not receipt_url:
            raise InvalidInput(
                "A receipt is required for Wafacash and bank transfer payments",
                field="receipt_url",
            )

        with booking_transaction(self.db, booking_id):
            booking = load_booking_for_update(self.db, booking_id)
            authorize(client_id, actor_role, booking, Action.SUBMIT_PAYMENT)

            if (
                booking.status != BookingStatus.AWAITING_PAYMENT
                or booking.payment_status != PaymentStatus.UNPAID
            ):
                raise InvalidBookingState(
                    "Payment can only be submitted once for a booking awaiting payment",
                    operation="submit_payment",
                    status=booking.status,
                    payment_status=booking.payment_status,
                )

            booking.payment_method = payment_method
            booking.payment_status = PaymentStatus.PENDING
            booking.receipt_url = receipt_url
            booking.transaction_id = transaction_id

        logger.info(
            "Payment submitted",
            extra={"booking_id": str(booking.id), "payment_method": payment_method.value},
        )
        dispatch_notifications(self.notifier, [
            NotificationRequest(
                recipient_id=booking.technician_id,
                event_type=NotificationType.PAYMENT_SUBMITTED,
                booking_id=booking.id,
                metadata={"payment_method": payment_method.value},
            )
        ])
        return booking

    def confirm_payment(self, booking_id: UUID, technician_id: UUID, actor_role: Any) -> Booking:
        """
        Confirm receipt of the payment and complete the booking.

        `payment_status = PAID` and `status = COMPLETED` are written in one
        commit: if anything fails in between, neither is applied.
        """
        with booking_transaction(self.db, booking_id):
            booking = load_booking_for_update(self.db, booking_id)
            authorize(technician_id, actor_role, booking, Action.CONFIRM_PAYMENT)

            if booking.payment_status == PaymentStatus.PAID:
                raise InvalidBookingState(
                    "Payment already confirmed",
                    operation="confirm_payment",
                    status=booking.status,
                    payment_status=booking.payment_status,
                )
            if booking.status != BookingStatus.AWAITING_PAYMENT:
                raise InvalidBookingState(
                    "Booking is not awaiting payment",
                    operation="confirm_payment",
                    status=booking.status,
                    payment_status=booking.payment_status,
                )

            if booking.payment_status == PaymentStatus.UNPAID:
                # Cash handed over in person, nothing was declared beforehand
                booking.payment_method = PaymentMethod.CASH

            booking.payment_status = PaymentStatus.PAID
            notice = self.engine.apply(
                booking,
                technician_id,
                SYSTEM_ROLE,
                BookingStatus.COMPLETED,
                {},
            )

        logger.info(
            "Payment confirmed",
            extra={"booking_id": str(booking.id), "payment_method": getattr(booking.payment_method, "value", None)},
        )
        dispatch_notifications(self.notifier, [notice])
        return booking

    def set_payment_status(
        self,
        booking_id: UUID,
        admin_id: UUID,
        actor_role: Any,
        new_status: Any,
        reason: Optional[str] = None,
    ) -> Booking:
        """
        Administrative override of the payment status.

        Any status may be set; PAID needs a non-empty reason and also marks
        the booking COMPLETED, which requires a recorded final price.
        """
        target = parse_payment_status(new_status)
        reason = (reason or "").strip() or None

        with booking_transaction(self.db, booking_id):
            booking = load_booking_for_update(self.db, booking_id)
            authorize(admin_id, actor_role, booking, Action.OVERRIDE_PAYMENT)

            if target is PaymentStatus.PAID and not reason:
                raise ReasonRequired(target)

            old_payment_status = booking.payment_status
            old_status = booking.status

            if target is PaymentStatus.PAID:
                if booking.final_price is None:
                    raise InvalidBookingState(
                        "A booking without a final price cannot be marked as paid",
                        operation="override_payment",
                        status=booking.status,
                        payment_status=booking.payment_status,
                    )
                booking.status = BookingStatus.COMPLETED

            booking.payment_status = target

            entry = PaymentAuditLog(
                booking_id=booking.id,
                actor_id=admin_id,
                old_payment_status=old_payment_status.value,
                new_payment_status=target.value,
                old_status=old_status.value,
                new_status=booking.status.value,
                reason=reason,
                created_at=datetime.now(timezone.utc),
            )
            self.db.add(entry)

        audit_logger.warning(
            "Payment status overridden by admin",
            extra={
                "booking_id": str(booking.id),
                "actor_id": str(admin_id),
                "old_payment_status": old_payment_status.value,
                "new_payment_status": target.value,
                "old_status": old_status.value,
                "new_status": booking.status.value,
                "reason": reason,
                "timestamp": entry.created_at.isoformat(),
                "correlation_id": get_correlation_id(),
            },
        )
        get_metrics_collector().increment_payment_overrides(target.value)

        metadata = {"new_payment_status": target.value, "reason": reason}
        dispatch_notifications(self.notifier, [
            NotificationRequest(party, NotificationType.PAYMENT_STATUS_OVERRIDDEN, booking.id, metadata)
            for party in (booking.client_id, booking.technician_id)
            if party is not None
        ])
        return booking
