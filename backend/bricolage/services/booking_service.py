"""
Booking service - creation and reads.

Status changes never happen here; they go through the lifecycle engine.
"""
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select, or_
from sqlalchemy.orm import Session

from bricolage.lib.logging import get_logger
from bricolage.lib.settings import settings
from bricolage.models.bookings import Booking, BookingStatus, PaymentStatus
from bricolage.models.notifications import NotificationType
from bricolage.models.technicians import TechnicianProfile
from bricolage.models.users import User, UserRole
from bricolage.services.access_control import Action, authorize, parse_role
from bricolage.services.booking_store import load_booking
from bricolage.services.errors import Forbidden, InvalidInput
from bricolage.services.notification_service import (
    NotificationRequest,
    Notifier,
    dispatch_notifications,
)


logger = get_logger(__name__)


def _require_text(value: Optional[str], field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise InvalidInput(f"{field.capitalize()} is required", field=field, value=value)
    return text


def _estimated_price(raw: Any, is_urgent: bool) -> Optional[Decimal]:
    """Supplied estimate plus the urgent fee for urgent requests."""
    price = None
    if raw is not None and raw != "":
        if isinstance(raw, bool):
            raise InvalidInput("Estimated price must be a number", field="estimated_price", value=raw)
        try:
            price = Decimal(str(raw))
        except (InvalidOperation, ValueError):
            raise InvalidInput("Estimated price must be a number", field="estimated_price", value=raw)
        if not price.is_finite() or price < 0:
            raise InvalidInput("Estimated price cannot be negative", field="estimated_price", value=raw)

    if is_urgent:
        price = (price or Decimal("0")) + Decimal(str(settings.urgent_fee))
    return price.quantize(Decimal("0.01")) if price is not None else None


def _scheduled(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    if value < datetime.now(timezone.utc):
        raise InvalidInput(
            "The scheduled date cannot be in the past",
            field="scheduled_date_time",
            value=value.isoformat(),
        )
    return value


class BookingService:
    """Booking creation and read access."""

    def __init__(self, db: Session, notifier: Optional[Notifier] = None):
        self.db = db
        self.notifier = notifier

    def create_booking(
        self,
        client_id: UUID,
        actor_role: Any,
        technician_id: UUID,
        category_id: UUID,
        description: str,
        city: str,
        address: str,
        scheduled_date_time: Optional[datetime] = None,
        estimated_price: Any = None,
        photos: Optional[list[str]] = None,
        is_urgent: bool = False,
    ) -> Booking:
        """
        Create a PENDING booking addressed to one technician.

        Raises:
            Forbidden: caller is not a client
            InvalidInput: unknown/unavailable technician or bad payload
        """
        if parse_role(actor_role) is not UserRole.CLIENT:
            raise Forbidden("Only clients can create bookings", actor_role=actor_role, action="CREATE")

        description = _require_text(description, "description")
        city = _require_text(city, "city")
        address = _require_text(address, "address")
        price = _estimated_price(estimated_price, is_urgent)
        scheduled = _scheduled(scheduled_date_time)

        technician = self.db.get(User, technician_id)
        profile = self.db.get(TechnicianProfile, technician_id)
        if (
            technician is None
            or technician.role != UserRole.TECHNICIAN
            or not technician.is_active
            or profile is None
            or not profile.is_available
        ):
            raise InvalidInput(
                "Technician not found or not available",
                field="technician_id",
                value=str(technician_id),
            )

        booking = Booking(
            client_id=client_id,
            technician_id=technician_id,
            category_id=category_id,
            description=description,
            city=city,
            address=address,
            scheduled_date_time=scheduled,
            photos=list(photos or []),
            is_urgent=bool(is_urgent),
            estimated_price=price,
            status=BookingStatus.PENDING,
            payment_status=PaymentStatus.UNPAID,
        )
        try:
            self.db.add(booking)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Booking created",
            extra={
                "booking_id": str(booking.id),
                "client_id": str(client_id),
                "technician_id": str(technician_id),
                "is_urgent": booking.is_urgent,
            },
        )

        client = self.db.get(User, client_id)
        dispatch_notifications(self.notifier, [
            NotificationRequest(
                recipient_id=technician_id,
                event_type=NotificationType.BOOKING_CREATED,
                booking_id=booking.id,
                metadata={"client_name": client.name if client else "a client"},
            )
        ])
        return booking

    def get_booking(self, booking_id: UUID, actor_id: UUID, actor_role: Any) -> Booking:
        booking = load_booking(self.db, booking_id)
        authorize(actor_id, actor_role, booking, Action.READ)
        return booking

    def list_bookings_for_actor(self, actor_id: UUID, actor_role: Any) -> list[Booking]:
        """A client's or technician's bookings, newest first."""
        role = parse_role(actor_role)
        if role is UserRole.CLIENT:
            condition = Booking.client_id == actor_id
        elif role is UserRole.TECHNICIAN:
            condition = Booking.technician_id == actor_id
        else:
            condition = or_(Booking.client_id == actor_id, Booking.technician_id == actor_id)
        stmt = select(Booking).where(condition).order_by(Booking.created_at.desc())
        return list(self.db.scalars(stmt))

    def list_bookings(
        self,
        actor_role: Any,
        status: Optional[BookingStatus] = None,
        payment_status: Optional[PaymentStatus] = None,
    ) -> list[Booking]:
        """Admin listing with optional filters."""
        if parse_role(actor_role) is not UserRole.ADMIN:
            raise Forbidden("Admin access required", actor_role=actor_role, action=Action.READ)

        stmt = select(Booking)
        if status is not None:
            stmt = stmt.where(Booking.status == status)
        if payment_status is not None:
            stmt = stmt.where(Booking.payment_status == payment_status)
        stmt = stmt.order_by(Booking.created_at.desc())
        return list(self.db.scalars(stmt))
