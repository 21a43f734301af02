"""
Booking model - service requests between clients and technicians.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import (
    String,
    Text,
    Numeric,
    Boolean,
    Integer,
    DateTime,
    ForeignKey,
    JSON,
    Uuid,
    Enum as SQLEnum,
    CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from bricolage.lib.db import Base


class BookingStatus(str, enum.Enum):
    """
    Booking status state machine.

    pending → accepted ⇄ on_the_way ⇄ in_progress ⇄ awaiting_payment → completed,
    with declined and cancelled as the other terminal states.
    """
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    ON_THE_WAY = "ON_THE_WAY"
    IN_PROGRESS = "IN_PROGRESS"
    AWAITING_PAYMENT = "AWAITING_PAYMENT"
    COMPLETED = "COMPLETED"
    DECLINED = "DECLINED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, enum.Enum):
    """Payment status enumeration (UNPAID → PENDING → PAID)."""
    UNPAID = "UNPAID"
    PENDING = "PENDING"
    PAID = "PAID"


class PaymentMethod(str, enum.Enum):
    """Payment methods a client can declare."""
    CASH = "CASH"
    CARD = "CARD"
    WAFACASH = "WAFACASH"
    BANK_TRANSFER = "BANK_TRANSFER"


class Booking(Base):
    """
    Booking entity - a single service request.

    The row is the only shared mutable resource of the lifecycle; `version`
    is checked on every UPDATE so concurrent writers cannot both win.
    """
    __tablename__ = "bookings"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )

    # Parties
    client_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    technician_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    category_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        index=True,
    )

    # Request payload
    description: Mapped[str] = mapped_column(Text, nullable=False)
    address: Mapped[str] = mapped_column(String(500), nullable=False)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    scheduled_date_time: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    photos: Mapped[list[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )
    is_urgent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Status
    status: Mapped[BookingStatus] = mapped_column(
        SQLEnum(BookingStatus, name="booking_status"),
        nullable=False,
        default=BookingStatus.PENDING,
        index=True,
    )

    # Pricing
    estimated_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    final_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)

    # Payment
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(PaymentStatus, name="payment_status"),
        nullable=False,
        default=PaymentStatus.UNPAID,
        index=True,
    )
    payment_method: Mapped[Optional[PaymentMethod]] = mapped_column(
        SQLEnum(PaymentMethod, name="payment_method"),
        nullable=True,
    )
    receipt_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    transaction_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Optimistic concurrency
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Timestamps
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

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(
            "(final_price IS NULL) = (status NOT IN ('AWAITING_PAYMENT', 'COMPLETED'))",
            name="booking_final_price_matches_status",
        ),
        CheckConstraint(
            "payment_status <> 'PAID' OR status = 'COMPLETED'",
            name="booking_paid_implies_completed",
        ),
        CheckConstraint(
            "estimated_price IS NULL OR estimated_price >= 0",
            name="booking_estimated_price_non_negative",
        ),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, status={self.status}, payment_status={self.payment_status})>"
