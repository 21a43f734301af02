"""
Notification model - record of every notification requested by the booking core.
"""
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import String, Text, Boolean, DateTime, JSON, Uuid, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from bricolage.lib.db import Base


class NotificationType(str, enum.Enum):
    """Events the booking core notifies about."""
    BOOKING_CREATED = "BOOKING_CREATED"
    BOOKING_ACCEPTED = "BOOKING_ACCEPTED"
    BOOKING_DECLINED = "BOOKING_DECLINED"
    BOOKING_CANCELLED = "BOOKING_CANCELLED"
    BOOKING_ON_THE_WAY = "BOOKING_ON_THE_WAY"
    BOOKING_IN_PROGRESS = "BOOKING_IN_PROGRESS"
    BOOKING_AWAITING_PAYMENT = "BOOKING_AWAITING_PAYMENT"
    BOOKING_STATUS_REVERTED = "BOOKING_STATUS_REVERTED"
    BOOKING_COMPLETED = "BOOKING_COMPLETED"
    QUOTE_AVAILABLE = "QUOTE_AVAILABLE"
    PAYMENT_SUBMITTED = "PAYMENT_SUBMITTED"
    PAYMENT_STATUS_OVERRIDDEN = "PAYMENT_STATUS_OVERRIDDEN"


class DeliveryStatus(str, enum.Enum):
    """Notification delivery status."""
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class Notification(Base):
    """
    Notification entity - one row per recipient per event.

    Written outside the booking transaction; a failed delivery leaves a
    FAILED row behind and never affects the booking.
    """
    __tablename__ = "notifications"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )

    recipient_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        index=True,
    )
    booking_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(as_uuid=True),
        nullable=True,
        index=True,
    )
    event_type: Mapped[NotificationType] = mapped_column(
        SQLEnum(NotificationType, name="notification_type"),
        nullable=False,
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    extra_data: Mapped[Optional[dict]] = mapped_column(
        JSON,
        nullable=True,
        name="metadata",
    )

    delivery_status: Mapped[DeliveryStatus] = mapped_column(
        SQLEnum(DeliveryStatus, name="notification_delivery_status"),
        nullable=False,
        default=DeliveryStatus.PENDING,
        index=True,
    )
    correlation_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    sent_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, type={self.event_type}, status={self.delivery_status})>"
