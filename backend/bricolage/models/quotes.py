"""
Quote model - technician terms attached to an accepted booking.
"""
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4, UUID

from sqlalchemy import Text, Numeric, DateTime, ForeignKey, Uuid, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from bricolage.lib.db import Base


class Quote(Base):
    """
    Quote entity (0..1 per Booking, enforced by the unique booking_id).
    """
    __tablename__ = "quotes"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )

    booking_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )

    conditions: Mapped[str] = mapped_column(Text, nullable=False)
    equipment: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint("price >= 0", name="quote_price_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Quote(id={self.id}, booking_id={self.booking_id}, price={self.price})>"
