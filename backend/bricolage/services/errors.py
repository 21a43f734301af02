"""
Typed errors raised by the booking core.

Every error carries a stable `code` and structured `details` (current status,
requested status, actor role, ...) so callers can render a precise message.
They are recoverable: the API layer turns them into 4xx responses. Database
failures are not wrapped here and propagate unchanged.
"""
from typing import Any, Optional

from fastapi import status

from bricolage.api.middleware.error_handler import AppException, ForbiddenException


def _value(item: Any) -> Any:
    """Enum members are reported by value, everything else as a string."""
    if item is None:
        return None
    return getattr(item, "value", str(item))


class BookingError(AppException):
    """Base class for guard and precondition failures."""

    code = "BOOKING_ERROR"
    default_status = status.HTTP_409_CONFLICT

    def __init__(self, message: str, **details: Any):
        super().__init__(
            message=message,
            status_code=self.default_status,
            details={key: _value(val) for key, val in details.items()},
        )


class Forbidden(ForbiddenException):
    """Actor/role is not permitted to perform this action on this booking."""

    def __init__(
        self,
        message: str = "Forbidden",
        actor_role: Any = None,
        action: Any = None,
        booking_id: Any = None,
    ):
        super().__init__(
            message=message,
            details={
                "actor_role": _value(actor_role),
                "action": _value(action),
                "booking_id": _value(booking_id),
            },
        )


class InvalidTransition(BookingError):
    """Requested status is not reachable from the current status."""

    code = "INVALID_TRANSITION"

    def __init__(self, current_status: Any, requested_status: Any, actor_role: Any = None):
        super().__init__(
            f"Cannot move booking from {_value(current_status)} to {_value(requested_status)}",
            current_status=current_status,
            requested_status=requested_status,
            actor_role=actor_role,
        )


class InvalidBookingState(BookingError):
    """An operation's status precondition is not met."""

    code = "INVALID_BOOKING_STATE"

    def __init__(
        self,
        message: str,
        operation: str,
        status: Any = None,
        payment_status: Any = None,
    ):
        super().__init__(
            message,
            operation=operation,
            status=status,
            payment_status=payment_status,
        )


class QuoteRequired(BookingError):
    """Work cannot start before a quote is on file."""

    code = "QUOTE_REQUIRED"

    def __init__(self, booking_id: Any, current_status: Any):
        super().__init__(
            "A quote must be submitted before starting the work",
            booking_id=booking_id,
            current_status=current_status,
        )


class QuoteLocked(BookingError):
    """Commercial terms are frozen once work has started."""

    code = "QUOTE_LOCKED"

    def __init__(self, booking_id: Any, current_status: Any):
        super().__init__(
            "The quote can no longer be changed once work has started",
            booking_id=booking_id,
            current_status=current_status,
        )


class FinalPriceRequired(BookingError):
    """Payment was requested without a positive final price."""

    code = "FINAL_PRICE_REQUIRED"
    default_status = 422

    def __init__(self, booking_id: Any, final_price: Any = None):
        super().__init__(
            "A final price greater than zero is required to request payment",
            booking_id=booking_id,
            final_price=final_price,
        )


class PaymentNotConfirmed(BookingError):
    """Completion or revert attempted against the payment state."""

    code = "PAYMENT_NOT_CONFIRMED"

    def __init__(self, booking_id: Any, payment_status: Any, message: Optional[str] = None):
        super().__init__(
            message or "Payment has not been confirmed",
            booking_id=booking_id,
            payment_status=payment_status,
        )


class DuplicateReview(BookingError):
    """Reviewer already reviewed this booking."""

    code = "DUPLICATE_REVIEW"

    def __init__(self, booking_id: Any, reviewer_id: Any):
        super().__init__(
            "A review from this user already exists for this booking",
            booking_id=booking_id,
            reviewer_id=reviewer_id,
        )


class InvalidInput(BookingError):
    """Malformed payload."""

    code = "INVALID_INPUT"
    default_status = 422

    def __init__(self, message: str, field: str, value: Any = None):
        super().__init__(message, field=field, value=value)


class ReasonRequired(BookingError):
    """Administrative PAID override without a justification."""

    code = "REASON_REQUIRED"
    default_status = 422

    def __init__(self, new_payment_status: Any):
        super().__init__(
            "A reason is required when marking a payment as PAID",
            new_payment_status=new_payment_status,
        )


class ConcurrentUpdate(BookingError):
    """Another request modified the booking between read and write."""

    code = "CONCURRENT_UPDATE"

    def __init__(self, booking_id: Any):
        super().__init__(
            "The booking was modified by another request, reload and retry",
            booking_id=booking_id,
        )
