"""
Unit tests for NotificationService and fire-and-forget dispatch.
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from bricolage.api.middleware.error_handler import ForbiddenException, NotFoundException
from bricolage.lib.metrics import get_metrics_collector
from bricolage.models import DeliveryStatus, Notification, NotificationType
from bricolage.services.notification_service import (
    ConsoleNotificationProvider,
    NotificationInbox,
    NotificationRequest,
    NotificationService,
    NullNotificationProvider,
    dispatch_notifications,
    get_provider,
    render_message,
)


@pytest.mark.unit
def test_console_provider_prints(capsys):
    provider = ConsoleNotificationProvider()

    assert provider.name == "console"
    assert provider.send(uuid4(), "Your technician accepted the booking.") is True
    assert "Your technician accepted the booking." in capsys.readouterr().out


@pytest.mark.unit
def test_get_provider():
    assert isinstance(get_provider("null"), NullNotificationProvider)
    assert isinstance(get_provider("console"), ConsoleNotificationProvider)


@pytest.mark.unit
def test_render_message_fills_known_fields():
    text = render_message(
        NotificationType.BOOKING_AWAITING_PAYMENT,
        {"final_price": Decimal("350.00"), "old_status": "IN_PROGRESS"},
    )
    assert "350.00 MAD" in text


@pytest.mark.unit
def test_render_message_tolerates_missing_fields():
    text = render_message(NotificationType.QUOTE_AVAILABLE, {})
    assert "Price:" in text


@pytest.mark.unit
def test_notify_records_sent_notification(db, session_factory):
    provider = MagicMock()
    provider.name = "mock"
    provider.send.return_value = True
    service = NotificationService(session_factory=session_factory, provider=provider)
    recipient, booking_id = uuid4(), uuid4()

    notification_id = service.notify(
        recipient,
        NotificationType.BOOKING_ACCEPTED,
        booking_id,
        {"old_status": "PENDING", "new_status": "ACCEPTED", "final_price": None},
    )

    stored = db.get(Notification, notification_id)
    assert stored.recipient_id == recipient
    assert stored.booking_id == booking_id
    assert stored.delivery_status == DeliveryStatus.SENT
    assert stored.sent_at is not None
    assert stored.extra_data == {"old_status": "PENDING", "new_status": "ACCEPTED", "final_price": None}
    provider.send.assert_called_once()
    assert get_metrics_collector().get_counter_value(
        "notifications_total", {"event_type": "BOOKING_ACCEPTED", "status": "sent"}
    ) == 1


@pytest.mark.unit
def test_notify_marks_failed_delivery(db, session_factory):
    provider = MagicMock()
    provider.name = "mock"
    provider.send.side_effect = TimeoutError("gateway timeout")
    service = NotificationService(session_factory=session_factory, provider=provider)

    notification_id = service.notify(uuid4(), NotificationType.BOOKING_DECLINED, uuid4(), {})

    stored = db.get(Notification, notification_id)
    assert stored.delivery_status == DeliveryStatus.FAILED
    assert stored.sent_at is None


@pytest.mark.unit
def test_notify_propagates_database_errors():
    session = MagicMock()
    session.flush.side_effect = OperationalError("INSERT", {}, Exception("connection lost"))
    service = NotificationService(session_factory=lambda: session, provider=NullNotificationProvider())

    with pytest.raises(OperationalError):
        service.notify(uuid4(), NotificationType.BOOKING_CREATED, uuid4(), {})

    session.rollback.assert_called_once()
    session.close.assert_called_once()


@pytest.mark.unit
def test_dispatch_swallows_and_counts_failures(failing_notifier):
    requests = [
        NotificationRequest(uuid4(), NotificationType.BOOKING_ACCEPTED, uuid4(), {}),
        NotificationRequest(uuid4(), NotificationType.QUOTE_AVAILABLE, uuid4(), {}),
    ]

    dispatch_notifications(failing_notifier, requests)

    assert failing_notifier.attempts == 2
    metrics = get_metrics_collector()
    assert metrics.get_counter_value(
        "notifications_total", {"event_type": "QUOTE_AVAILABLE", "status": "failed"}
    ) == 1


@pytest.mark.unit
def test_dispatch_without_notifier_is_noop():
    dispatch_notifications(None, [NotificationRequest(uuid4(), NotificationType.BOOKING_CREATED, None, {})])


@pytest.mark.unit
def test_dispatch_passes_request_fields(notifier):
    recipient, booking_id = uuid4(), uuid4()

    dispatch_notifications(notifier, [
        NotificationRequest(recipient, NotificationType.BOOKING_COMPLETED, booking_id, {"x": 1})
    ])

    assert notifier.calls == [{
        "recipient_id": recipient,
        "event_type": NotificationType.BOOKING_COMPLETED,
        "booking_id": booking_id,
        "metadata": {"x": 1},
    }]


# ===== Inbox =====

def _record(db, recipient_id, minutes_ago, is_read=False, event_type=NotificationType.BOOKING_ACCEPTED):
    notification = Notification(
        recipient_id=recipient_id,
        booking_id=uuid4(),
        event_type=event_type,
        message=f"event {minutes_ago} minutes ago",
        delivery_status=DeliveryStatus.SENT,
        is_read=is_read,
        created_at=datetime.now(timezone.utc) - timedelta(minutes=minutes_ago),
    )
    db.add(notification)
    db.commit()
    return notification


@pytest.mark.unit
def test_inbox_lists_newest_first_for_recipient_only(db, client_user, technician):
    older = _record(db, client_user.id, minutes_ago=10)
    newer = _record(db, client_user.id, minutes_ago=1, is_read=True)
    _record(db, technician.id, minutes_ago=5)

    inbox = NotificationInbox(db)

    assert [n.id for n in inbox.list_for_recipient(client_user.id)] == [newer.id, older.id]
    assert [n.id for n in inbox.list_for_recipient(client_user.id, unread_only=True)] == [older.id]
    assert len(inbox.list_for_recipient(client_user.id, limit=1)) == 1


@pytest.mark.unit
def test_inbox_unread_count_and_mark_all(db, client_user, technician):
    for minutes in (1, 2, 3):
        _record(db, client_user.id, minutes_ago=minutes)
    _record(db, client_user.id, minutes_ago=4, is_read=True)
    _record(db, technician.id, minutes_ago=1)
    inbox = NotificationInbox(db)

    assert inbox.unread_count(client_user.id) == 3
    assert inbox.mark_all_read(client_user.id) == 3
    assert inbox.unread_count(client_user.id) == 0
    # Other recipients are untouched
    assert inbox.unread_count(technician.id) == 1


@pytest.mark.unit
def test_inbox_mark_read(db, client_user):
    notification = _record(db, client_user.id, minutes_ago=1)

    updated = NotificationInbox(db).mark_read(notification.id, client_user.id)

    assert updated.is_read is True
    assert NotificationInbox(db).unread_count(client_user.id) == 0


@pytest.mark.unit
def test_inbox_mark_read_of_someone_else(db, client_user, technician):
    notification = _record(db, technician.id, minutes_ago=1)

    with pytest.raises(ForbiddenException):
        NotificationInbox(db).mark_read(notification.id, client_user.id)
    with pytest.raises(NotFoundException):
        NotificationInbox(db).mark_read(uuid4(), client_user.id)

    db.refresh(notification)
    assert notification.is_read is False
