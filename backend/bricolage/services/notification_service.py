"""
Notification service abstraction for booking events.

The booking core only asks for `notify(recipient_id, event_type, booking_id,
metadata)` after its own transaction has committed. Every request is recorded
in the notifications table and handed to a delivery provider; delivery
problems are logged and counted, never raised back into the booking flow.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional, Protocol
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from bricolage.api.middleware.error_handler import ForbiddenException, NotFoundException
from bricolage.lib.db import SessionLocal
from bricolage.lib.logging import get_logger, get_correlation_id
from bricolage.lib.metrics import get_metrics_collector
from bricolage.lib.settings import settings
from bricolage.models.notifications import Notification, NotificationType, DeliveryStatus


logger = get_logger(__name__)


MESSAGE_TEMPLATES: dict[NotificationType, str] = {
    NotificationType.BOOKING_CREATED: "New booking request from {client_name}.",
    NotificationType.BOOKING_ACCEPTED: "Your technician accepted the booking.",
    NotificationType.BOOKING_DECLINED: "Your technician declined the booking.",
    NotificationType.BOOKING_CANCELLED: "The client cancelled the booking.",
    NotificationType.BOOKING_ON_THE_WAY: "Your technician is on the way to your address.",
    NotificationType.BOOKING_IN_PROGRESS: "Your technician has started the work.",
    NotificationType.BOOKING_AWAITING_PAYMENT: (
        "The work is finished. Amount to pay: {final_price} {currency}. "
        "Please proceed to payment."
    ),
    NotificationType.BOOKING_STATUS_REVERTED: "The booking status went back to {new_status}.",
    NotificationType.BOOKING_COMPLETED: "Payment confirmed by the technician, the booking is completed. Thank you!",
    NotificationType.QUOTE_AVAILABLE: (
        "A quote is available for your booking. Price: {price} {currency}. "
        "Download it here: {recap_url}"
    ),
    NotificationType.PAYMENT_SUBMITTED: (
        "The client declared a {payment_method} payment. Please confirm receipt."
    ),
    NotificationType.PAYMENT_STATUS_OVERRIDDEN: (
        "An administrator set the payment status to {new_payment_status}."
    ),
}


class _BlankMissing(dict):
    """format_map mapping that renders unknown placeholders as empty text."""

    def __missing__(self, key: str) -> str:
        return ""


def render_message(event_type: NotificationType, metadata: dict) -> str:
    """Render the human-readable message for an event."""
    template = MESSAGE_TEMPLATES.get(event_type, "Your booking was updated.")
    values = _BlankMissing(currency=settings.currency)
    values.update({k: v for k, v in metadata.items() if v is not None})
    return template.format_map(values)


@dataclass(frozen=True)
class NotificationRequest:
    """A notification the booking core wants sent once its change is committed."""
    recipient_id: UUID
    event_type: NotificationType
    booking_id: Optional[UUID]
    metadata: dict = field(default_factory=dict)


class Notifier(Protocol):
    """Narrow interface consumed by the booking core."""

    def notify(
        self,
        recipient_id: UUID,
        event_type: NotificationType,
        booking_id: Optional[UUID],
        metadata: dict,
    ) -> Any:
        ...


class NotificationProvider(ABC):
    """
    Abstract base class for notification delivery providers.
    """

    @abstractmethod
    def send(self, recipient_id: UUID, message: str, **kwargs) -> bool:
        """
        Deliver a message.

        Returns:
            True if sent successfully, False otherwise
        """
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the provider name."""
        pass


class ConsoleNotificationProvider(NotificationProvider):
    """
    Console provider for development/testing.
    Prints messages to console instead of sending.
    """

    @property
    def name(self) -> str:
        return "console"

    def send(self, recipient_id: UUID, message: str, **kwargs) -> bool:
        title = kwargs.get("title", settings.app_name)
        print("\n" + "=" * 60)
        print(f"🔔 Notification to {recipient_id}:")
        print(f"   Title: {title}")
        print(f"   Body: {message}")
        print("=" * 60 + "\n")
        logger.info("Notification logged to console", extra={"recipient_id": str(recipient_id)})
        return True


class NullNotificationProvider(NotificationProvider):
    """Provider that records nothing outside the notifications table."""

    @property
    def name(self) -> str:
        return "null"

    def send(self, recipient_id: UUID, message: str, **kwargs) -> bool:
        return True


def get_provider(name: str) -> NotificationProvider:
    """Build the provider configured in settings."""
    if name == "null":
        return NullNotificationProvider()
    return ConsoleNotificationProvider()


class NotificationService:
    """
    Records and delivers notifications in a session of its own.

    Handles:
    - Database logging to the notifications table
    - Provider delivery and delivery status tracking
    - Correlation ID propagation
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        provider: Optional[NotificationProvider] = None,
    ):
        self.session_factory = session_factory
        self.provider = provider or get_provider(settings.notification_provider)

    def notify(
        self,
        recipient_id: UUID,
        event_type: NotificationType,
        booking_id: Optional[UUID],
        metadata: dict,
    ) -> Optional[UUID]:
        """
        Record a notification and attempt delivery.

        Args:
            recipient_id: User to notify
            event_type: What happened
            booking_id: Booking the event belongs to
            metadata: Event details (old/new status, prices, ...)

        Returns:
            Notification ID
        """
        message_text = render_message(event_type, metadata)
        metrics = get_metrics_collector()

        db = self.session_factory()
        try:
            notification = Notification(
                recipient_id=recipient_id,
                booking_id=booking_id,
                event_type=event_type,
                message=message_text,
                extra_data={k: str(v) if v is not None else None for k, v in metadata.items()},
                delivery_status=DeliveryStatus.PENDING,
                correlation_id=get_correlation_id(),
            )
            db.add(notification)
            db.flush()

            try:
                success = self.provider.send(recipient_id, message_text, event_type=event_type.value)
            except Exception as e:
                logger.error(
                    f"Error sending notification: {e}",
                    extra={"notification_id": str(notification.id), "provider": self.provider.name},
                    exc_info=True,
                )
                success = False

            if success:
                notification.delivery_status = DeliveryStatus.SENT
                notification.sent_at = datetime.now(timezone.utc)
                metrics.increment_notifications(event_type.value, "sent")
            else:
                notification.delivery_status = DeliveryStatus.FAILED
                metrics.increment_notifications(event_type.value, "failed")
                logger.warning(
                    "Notification delivery failed",
                    extra={"notification_id": str(notification.id), "event_type": event_type.value},
                )

            db.commit()
            return notification.id
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


INBOX_PAGE_SIZE = 50


class NotificationInbox:
    """A user's view of the notifications recorded for them."""

    def __init__(self, db: Session):
        self.db = db

    def list_for_recipient(
        self,
        recipient_id: UUID,
        unread_only: bool = False,
        limit: int = INBOX_PAGE_SIZE,
    ) -> list[Notification]:
        """Most recent notifications first, capped at `limit`."""
        stmt = select(Notification).where(Notification.recipient_id == recipient_id)
        if unread_only:
            stmt = stmt.where(Notification.is_read.is_(False))
        stmt = stmt.order_by(Notification.created_at.desc()).limit(limit)
        return list(self.db.scalars(stmt))

    def unread_count(self, recipient_id: UUID) -> int:
        stmt = select(func.count()).select_from(Notification).where(
            Notification.recipient_id == recipient_id,
            Notification.is_read.is_(False),
        )
        return self.db.scalar(stmt) or 0

    def mark_read(self, notification_id: UUID, recipient_id: UUID) -> Notification:
        """
        Mark one notification as read.

        Raises:
            NotFoundException: no such notification
            ForbiddenException: it belongs to someone else
        """
        notification = self.db.get(Notification, notification_id)
        if notification is None:
            raise NotFoundException("Notification", notification_id)
        if notification.recipient_id != recipient_id:
            raise ForbiddenException(
                "Notification belongs to another user",
                details={"resource": "Notification", "resource_id": str(notification_id)},
            )
        if not notification.is_read:
            notification.is_read = True
            self.db.commit()
        return notification

    def mark_all_read(self, recipient_id: UUID) -> int:
        """Mark every unread notification of the recipient; returns how many changed."""
        result = self.db.execute(
            update(Notification)
            .where(Notification.recipient_id == recipient_id, Notification.is_read.is_(False))
            .values(is_read=True)
            .execution_options(synchronize_session="fetch")
        )
        self.db.commit()
        logger.info(
            "Notifications marked as read",
            extra={"recipient_id": str(recipient_id), "count": result.rowcount},
        )
        return result.rowcount


def dispatch_notifications(
    notifier: Optional[Notifier],
    requests: Iterable[NotificationRequest],
) -> None:
    """
    Fire-and-forget dispatch of notifications after a committed change.

    A failing notifier is logged and counted; the booking change stands.
    """
    if notifier is None:
        return
    for request in requests:
        try:
            notifier.notify(
                request.recipient_id,
                request.event_type,
                request.booking_id,
                request.metadata,
            )
        except Exception as e:
            get_metrics_collector().increment_notifications(request.event_type.value, "failed")
            logger.error(
                f"Notification dispatch failed: {e}",
                extra={
                    "booking_id": str(request.booking_id),
                    "recipient_id": str(request.recipient_id),
                    "event_type": request.event_type.value,
                },
                exc_info=True,
            )


def get_notification_service() -> NotificationService:
    """Factory used by the API dependencies."""
    return NotificationService()
