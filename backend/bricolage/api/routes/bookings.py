"""
Booking API routes.

Thin HTTP layer over the booking services: every status change goes through
the lifecycle engine, payment steps through the payment workflow.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from bricolage.api.dependencies import Actor, get_current_actor, get_db, get_notifier
from bricolage.models.bookings import Booking, BookingStatus, PaymentMethod, PaymentStatus
from bricolage.services.booking_service import BookingService
from bricolage.services.lifecycle import BookingLifecycleEngine, allowed_targets
from bricolage.services.notification_service import Notifier
from bricolage.services.payment_service import PaymentService


# Pydantic schemas
class BookingCreate(BaseModel):
    """Booking creation payload."""
    technician_id: UUID
    category_id: UUID
    description: str = Field(..., min_length=1, max_length=5000)
    city: str = Field(..., min_length=1, max_length=100)
    address: str = Field(..., min_length=1, max_length=500)
    scheduled_date_time: Optional[datetime] = None
    estimated_price: Optional[float] = None
    photos: List[str] = Field(default_factory=list)
    is_urgent: bool = False


class StatusUpdate(BaseModel):
    """Generic status change; `final_price` is read for AWAITING_PAYMENT."""
    status: str
    final_price: Optional[float] = None


class PaymentSubmission(BaseModel):
    payment_method: str
    receipt_url: Optional[str] = None
    transaction_id: Optional[str] = None


class BookingResponse(BaseModel):
    """Booking as seen by one of its parties."""
    id: UUID
    client_id: UUID
    technician_id: Optional[UUID] = None
    category_id: UUID
    description: str
    city: str
    address: str
    scheduled_date_time: Optional[datetime] = None
    photos: List[str] = Field(default_factory=list)
    is_urgent: bool
    status: BookingStatus
    estimated_price: Optional[float] = None
    final_price: Optional[float] = None
    payment_status: PaymentStatus
    payment_method: Optional[PaymentMethod] = None
    receipt_url: Optional[str] = None
    transaction_id: Optional[str] = None
    version: int
    created_at: datetime
    updated_at: datetime
    allowed_transitions: List[BookingStatus] = Field(default_factory=list)

    model_config = {"from_attributes": True}


def to_response(booking: Booking, actor: Actor) -> BookingResponse:
    response = BookingResponse.model_validate(booking)
    response.allowed_transitions = allowed_targets(booking.status, actor.role.value)
    return response


# Router
router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    payload: BookingCreate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> BookingResponse:
    """Create a PENDING booking for a technician (clients only)."""
    booking = BookingService(db, notifier).create_booking(
        client_id=actor.id,
        actor_role=actor.role,
        technician_id=payload.technician_id,
        category_id=payload.category_id,
        description=payload.description,
        city=payload.city,
        address=payload.address,
        scheduled_date_time=payload.scheduled_date_time,
        estimated_price=payload.estimated_price,
        photos=payload.photos,
        is_urgent=payload.is_urgent,
    )
    return to_response(booking, actor)


@router.get("/my-bookings", response_model=List[BookingResponse])
def list_my_bookings(
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> List[BookingResponse]:
    """Bookings of the calling client or technician, newest first."""
    bookings = BookingService(db).list_bookings_for_actor(actor.id, actor.role)
    return [to_response(b, actor) for b in bookings]


@router.get("/{booking_id}", response_model=BookingResponse)
def get_booking(
    booking_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> BookingResponse:
    booking = BookingService(db).get_booking(booking_id, actor.id, actor.role)
    return to_response(booking, actor)


def _transition(
    db: Session,
    notifier: Notifier,
    actor: Actor,
    booking_id: UUID,
    target: str,
    final_price: Optional[float] = None,
) -> BookingResponse:
    payload = {"final_price": final_price} if final_price is not None else {}
    booking = BookingLifecycleEngine(db, notifier).transition(
        booking_id, actor.id, actor.role, target, payload,
    )
    return to_response(booking, actor)


@router.patch("/{booking_id}/accept", response_model=BookingResponse)
def accept_booking(
    booking_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> BookingResponse:
    return _transition(db, notifier, actor, booking_id, BookingStatus.ACCEPTED)


@router.patch("/{booking_id}/decline", response_model=BookingResponse)
def decline_booking(
    booking_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> BookingResponse:
    return _transition(db, notifier, actor, booking_id, BookingStatus.DECLINED)


@router.patch("/{booking_id}/cancel", response_model=BookingResponse)
def cancel_booking(
    booking_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> BookingResponse:
    return _transition(db, notifier, actor, booking_id, BookingStatus.CANCELLED)


@router.patch("/{booking_id}/status", response_model=BookingResponse)
def update_booking_status(
    booking_id: UUID,
    payload: StatusUpdate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> BookingResponse:
    """
    Move the booking along the lifecycle.

    Request body:
    - status: target status
    - final_price: required when requesting AWAITING_PAYMENT
    """
    return _transition(db, notifier, actor, booking_id, payload.status, payload.final_price)


@router.patch("/{booking_id}/payment", response_model=BookingResponse)
def submit_payment(
    booking_id: UUID,
    payload: PaymentSubmission,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> BookingResponse:
    """Client declares the payment method (and proof) for a booking awaiting payment."""
    booking = PaymentService(db, notifier).submit_payment_proof(
        booking_id,
        actor.id,
        actor.role,
        payload.payment_method,
        receipt_url=payload.receipt_url,
        transaction_id=payload.transaction_id,
    )
    return to_response(booking, actor)


@router.patch("/{booking_id}/confirm-payment", response_model=BookingResponse)
def confirm_payment(
    booking_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> BookingResponse:
    """Technician confirms receipt; the booking is completed in the same commit."""
    booking = PaymentService(db, notifier).confirm_payment(booking_id, actor.id, actor.role)
    return to_response(booking, actor)
