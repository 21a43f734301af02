"""
Review API routes.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from bricolage.api.dependencies import Actor, get_current_actor, get_db
from bricolage.services.review_service import ReviewService


# Pydantic schemas
class ReviewCreate(BaseModel):
    booking_id: UUID
    reviewee_id: UUID
    rating: int
    comment: Optional[str] = Field(None, max_length=1000)


class ReviewResponse(BaseModel):
    id: UUID
    booking_id: UUID
    reviewer_id: UUID
    reviewee_id: UUID
    rating: int
    comment: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


# Router
router = APIRouter(prefix="/reviews", tags=["reviews"])


@router.post("", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
def create_review(
    payload: ReviewCreate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> ReviewResponse:
    """Review the other party of a completed and paid booking."""
    review = ReviewService(db).create_review(
        payload.booking_id,
        actor.id,
        actor.role,
        payload.reviewee_id,
        payload.rating,
        payload.comment,
    )
    return ReviewResponse.model_validate(review)


@router.get("/booking/{booking_id}", response_model=List[ReviewResponse])
def list_booking_reviews(
    booking_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> List[ReviewResponse]:
    reviews = ReviewService(db).list_reviews_for_booking(booking_id, actor.id, actor.role)
    return [ReviewResponse.model_validate(r) for r in reviews]


@router.get("/user/{user_id}", response_model=List[ReviewResponse])
def list_user_reviews(
    user_id: UUID,
    db: Session = Depends(get_db),
) -> List[ReviewResponse]:
    """Public list of reviews received by a user."""
    reviews = ReviewService(db).list_reviews_for_user(user_id)
    return [ReviewResponse.model_validate(r) for r in reviews]
