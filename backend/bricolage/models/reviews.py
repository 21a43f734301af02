"""
Review model - feedback left by either party on a paid, completed booking.
"""
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4, UUID

from sqlalchemy import (
    String,
    Integer,
    DateTime,
    ForeignKey,
    Uuid,
    CheckConstraint,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from bricolage.lib.db import Base


class Review(Base):
    """
    Review entity - one per (booking, reviewer); client→technician and
    technician→client reviews are independent rows.
    """
    __tablename__ = "reviews"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )

    booking_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    reviewer_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    reviewee_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Rating (1-5 scale)
    rating: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    # Comment
    comment: Mapped[Optional[str]] = mapped_column(
        String(1000),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint("booking_id", "reviewer_id", name="review_one_per_reviewer"),
        CheckConstraint(
            "rating >= 1 AND rating <= 5",
            name="review_rating_range",
        ),
    )

    def __repr__(self) -> str:
        return f"<Review(id={self.id}, booking_id={self.booking_id}, rating={self.rating})>"
