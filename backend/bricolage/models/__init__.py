"""
SQLAlchemy models package.
Import all models here to ensure they're registered with Base.metadata.
"""
from bricolage.models.users import User, UserRole
from bricolage.models.technicians import TechnicianProfile
from bricolage.models.bookings import (
    Booking,
    BookingStatus,
    PaymentStatus,
    PaymentMethod,
)
from bricolage.models.quotes import Quote
from bricolage.models.reviews import Review
from bricolage.models.notifications import Notification, NotificationType, DeliveryStatus
from bricolage.models.payment_audit import PaymentAuditLog

__all__ = [
    "User",
    "UserRole",
    "TechnicianProfile",
    "Booking",
    "BookingStatus",
    "PaymentStatus",
    "PaymentMethod",
    "Quote",
    "Review",
    "Notification",
    "NotificationType",
    "DeliveryStatus",
    "PaymentAuditLog",
]
