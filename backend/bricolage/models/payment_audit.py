"""
Payment audit log - trail of administrative payment status overrides.
"""
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4, UUID

from sqlalchemy import String, DateTime, ForeignKey, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from bricolage.lib.db import Base


class PaymentAuditLog(Base):
    """
    One row per override, written in the same transaction as the change.
    """
    __tablename__ = "payment_audit_logs"

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
    actor_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)

    old_payment_status: Mapped[str] = mapped_column(String(20), nullable=False)
    new_payment_status: Mapped[str] = mapped_column(String(20), nullable=False)
    old_status: Mapped[str] = mapped_column(String(20), nullable=False)
    new_status: Mapped[str] = mapped_column(String(20), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return (
            f"<PaymentAuditLog(booking_id={self.booking_id}, "
            f"{self.old_payment_status}->{self.new_payment_status})>"
        )
