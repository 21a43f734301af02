"""
Review service - mutual feedback once a booking is paid and completed.
"""
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bricolage.lib.logging import get_logger
from bricolage.models.bookings import Booking, BookingStatus, PaymentStatus
from bricolage.models.reviews import Review
from bricolage.models.technicians import TechnicianProfile
from bricolage.services.access_control import Action, authorize
from bricolage.services.booking_store import load_booking
from bricolage.services.errors import (
    DuplicateReview,
    InvalidBookingState,
    InvalidInput,
)


logger = get_logger(__name__)

MAX_COMMENT_LENGTH = 1000


def _parse_rating(raw: Any) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int) or not 1 <= raw <= 5:
        raise InvalidInput("Rating must be an integer between 1 and 5", field="rating", value=raw)
    return raw


def _other_party(booking: Booking, reviewer_id: UUID) -> Optional[UUID]:
    if str(booking.client_id) == str(reviewer_id):
        return booking.technician_id
    return booking.client_id


class ReviewService:
    """Create and list reviews."""

    def __init__(self, db: Session):
        self.db = db

    def create_review(
        self,
        booking_id: UUID,
        reviewer_id: UUID,
        reviewer_role: Any,
        reviewee_id: UUID,
        rating: Any,
        comment: Optional[str] = None,
    ) -> Review:
        """
        Leave a review for the other party of a booking.

        Raises:
            InvalidInput: bad rating or reviewee is not the other party
            Forbidden: reviewer is not a party of the booking
            InvalidBookingState: booking is not both COMPLETED and PAID
            DuplicateReview: reviewer already reviewed this booking
        """
        rating = _parse_rating(rating)
        comment = (comment or "").strip() or None
        if comment is not None and len(comment) > MAX_COMMENT_LENGTH:
            raise InvalidInput("Comment is too long", field="comment", value=len(comment))

        booking = load_booking(self.db, booking_id)
        authorize(reviewer_id, reviewer_role, booking, Action.REVIEW)

        expected = _other_party(booking, reviewer_id)
        if expected is None or str(expected) != str(reviewee_id):
            raise InvalidInput(
                "The reviewee must be the other party of the booking",
                field="reviewee_id",
                value=str(reviewee_id),
            )

        if booking.status != BookingStatus.COMPLETED:
            raise InvalidBookingState(
                "Only completed bookings can be reviewed",
                operation="review",
                status=booking.status,
                payment_status=booking.payment_status,
            )
        if booking.payment_status != PaymentStatus.PAID:
            raise InvalidBookingState(
                "Only paid bookings can be reviewed",
                operation="review",
                status=booking.status,
                payment_status=booking.payment_status,
            )

        if self._find(booking.id, reviewer_id) is not None:
            raise DuplicateReview(booking.id, reviewer_id)

        review = Review(
            booking_id=booking.id,
            reviewer_id=reviewer_id,
            reviewee_id=expected,
            rating=rating,
            comment=comment,
        )
        try:
            self.db.add(review)
            self.db.flush()
            if str(expected) == str(booking.technician_id):
                self._refresh_technician_rating(expected)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            # A concurrent request inserted the same (booking, reviewer) pair
            if self._find(booking.id, reviewer_id) is not None:
                raise DuplicateReview(booking.id, reviewer_id)
            raise
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Review created",
            extra={"booking_id": str(booking.id), "reviewer_id": str(reviewer_id), "rating": rating},
        )
        return review

    def list_reviews_for_booking(self, booking_id: UUID, actor_id: UUID, actor_role: Any) -> list[Review]:
        booking = load_booking(self.db, booking_id)
        authorize(actor_id, actor_role, booking, Action.READ)
        stmt = select(Review).where(Review.booking_id == booking_id).order_by(Review.created_at)
        return list(self.db.scalars(stmt))

    def list_reviews_for_user(self, user_id: UUID) -> list[Review]:
        """Public reviews received by a user, newest first."""
        stmt = (
            select(Review)
            .where(Review.reviewee_id == user_id)
            .order_by(Review.created_at.desc())
        )
        return list(self.db.scalars(stmt))

    def _find(self, booking_id: UUID, reviewer_id: UUID) -> Optional[Review]:
        stmt = select(Review).where(
            Review.booking_id == booking_id,
            Review.reviewer_id == reviewer_id,
        )
        return self.db.scalars(stmt).first()

    def _refresh_technician_rating(self, technician_id: UUID) -> None:
        profile = self.db.get(TechnicianProfile, technician_id)
        if profile is None:
            return
        average, count = self.db.execute(
            select(func.avg(Review.rating), func.count(Review.id))
            .where(Review.reviewee_id == technician_id)
        ).one()
        profile.review_count = count
        profile.average_rating = (
            Decimal(str(average)).quantize(Decimal("0.01")) if average is not None else None
        )
