"""
Quote API routes.
"""
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from bricolage.api.dependencies import Actor, get_current_actor, get_db, get_notifier
from bricolage.services.notification_service import Notifier
from bricolage.services.quote_service import QuoteService


# Pydantic schemas
class QuoteUpsert(BaseModel):
    """Quote submission; re-posting for the same booking updates it."""
    booking_id: UUID
    conditions: str = Field(..., min_length=1)
    equipment: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)


class QuoteResponse(BaseModel):
    id: UUID
    booking_id: UUID
    conditions: str
    equipment: str
    price: float
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# Router
router = APIRouter(prefix="/quotes", tags=["quotes"])


@router.post("", response_model=QuoteResponse)
def create_or_update_quote(
    payload: QuoteUpsert,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> QuoteResponse:
    """
    Submit the quote of a booking (assigned technician only).

    Allowed while the booking is ACCEPTED or ON_THE_WAY; locked from
    IN_PROGRESS on.
    """
    quote = QuoteService(db, notifier).create_or_update_quote(
        payload.booking_id,
        actor.id,
        actor.role,
        conditions=payload.conditions,
        equipment=payload.equipment,
        price=payload.price,
    )
    return QuoteResponse.model_validate(quote)


@router.get("/booking/{booking_id}", response_model=QuoteResponse)
def get_quote_for_booking(
    booking_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> QuoteResponse:
    quote = QuoteService(db).get_quote(booking_id, actor.id, actor.role)
    return QuoteResponse.model_validate(quote)
