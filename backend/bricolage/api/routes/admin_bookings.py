"""
Admin booking routes - supervision and payment override.
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from bricolage.api.dependencies import Actor, get_current_actor, get_db, get_notifier
from bricolage.api.routes.bookings import BookingResponse, to_response
from bricolage.models.bookings import BookingStatus, PaymentStatus
from bricolage.services.booking_service import BookingService
from bricolage.services.notification_service import Notifier
from bricolage.services.payment_service import PaymentService


class PaymentOverride(BaseModel):
    """Administrative payment status change; `reason` is mandatory for PAID."""
    payment_status: str
    reason: Optional[str] = None


router = APIRouter(prefix="/admin/bookings", tags=["admin", "bookings"])


@router.get("", response_model=List[BookingResponse])
def list_bookings(
    status: Optional[BookingStatus] = Query(None, description="Filter by booking status"),
    payment_status: Optional[PaymentStatus] = Query(None, description="Filter by payment status"),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> List[BookingResponse]:
    """List all bookings (admin only), newest first."""
    bookings = BookingService(db).list_bookings(actor.role, status=status, payment_status=payment_status)
    return [to_response(b, actor) for b in bookings]


@router.patch("/{booking_id}/payment", response_model=BookingResponse)
def override_payment_status(
    booking_id: UUID,
    payload: PaymentOverride,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> BookingResponse:
    """
    Force the payment status of a booking.

    Audited: every call writes a payment audit log entry.
    """
    booking = PaymentService(db, notifier).set_payment_status(
        booking_id,
        actor.id,
        actor.role,
        payload.payment_status,
        reason=payload.reason,
    )
    return to_response(booking, actor)
