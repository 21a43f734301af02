"""
Unit tests for the payment confirmation workflow and admin override.
"""
import logging
from decimal import Decimal

import pytest
from sqlalchemy import event

from bricolage.lib.logging import AUDIT_LOGGER_NAME
from bricolage.lib.metrics import get_metrics_collector
from bricolage.models import (
    Booking,
    BookingStatus,
    NotificationType,
    PaymentAuditLog,
    PaymentMethod,
    PaymentStatus,
)
from bricolage.services.errors import (
    Forbidden,
    InvalidBookingState,
    InvalidInput,
    InvalidTransition,
    PaymentNotConfirmed,
    ReasonRequired,
)
from bricolage.services.lifecycle import BookingLifecycleEngine
from bricolage.services.payment_service import PaymentService

from conftest import assert_booking_invariants


S = BookingStatus


# ===== Submit payment proof =====

@pytest.mark.unit
def test_submit_cash_payment(db, make_booking, client_user, technician, notifier):
    booking = make_booking(status=S.AWAITING_PAYMENT)

    updated = PaymentService(db, notifier).submit_payment_proof(booking.id, client_user.id, "CLIENT", "CASH")

    assert updated.payment_status == PaymentStatus.PENDING
    assert updated.payment_method == PaymentMethod.CASH
    assert updated.status == S.AWAITING_PAYMENT
    [call] = notifier.calls
    assert call["event_type"] == NotificationType.PAYMENT_SUBMITTED
    assert call["recipient_id"] == technician.id


@pytest.mark.unit
def test_card_payment_needs_transaction_id(db, make_booking, client_user):
    booking = make_booking(status=S.AWAITING_PAYMENT)
    service = PaymentService(db)

    with pytest.raises(InvalidInput) as exc_info:
        service.submit_payment_proof(booking.id, client_user.id, "CLIENT", "CARD")
    assert exc_info.value.details["field"] == "transaction_id"

    updated = service.submit_payment_proof(booking.id, client_user.id, "CLIENT", "CARD", transaction_id="TX-42")
    assert updated.transaction_id == "TX-42"


@pytest.mark.unit
@pytest.mark.parametrize("method", ["WAFACASH", "BANK_TRANSFER"])
def test_transfer_payments_need_receipt(db, make_booking, client_user, method):
    booking = make_booking(status=S.AWAITING_PAYMENT)
    service = PaymentService(db)

    with pytest.raises(InvalidInput):
        service.submit_payment_proof(booking.id, client_user.id, "CLIENT", method)

    updated = service.submit_payment_proof(
        booking.id, client_user.id, "CLIENT", method, receipt_url="https://files.example.com/r.jpg"
    )
    assert updated.receipt_url == "https://files.example.com/r.jpg"


@pytest.mark.unit
def test_unknown_payment_method(db, make_booking, client_user):
    booking = make_booking(status=S.AWAITING_PAYMENT)

    with pytest.raises(InvalidInput):
        PaymentService(db).submit_payment_proof(booking.id, client_user.id, "CLIENT", "BITCOIN")


@pytest.mark.unit
def test_submit_payment_requires_awaiting_payment(db, make_booking, client_user):
    booking = make_booking(status=S.IN_PROGRESS)

    with pytest.raises(InvalidBookingState):
        PaymentService(db).submit_payment_proof(booking.id, client_user.id, "CLIENT", "CASH")


@pytest.mark.unit
def test_submit_payment_only_once(db, make_booking, client_user):
    booking = make_booking(status=S.AWAITING_PAYMENT, payment_status=PaymentStatus.PENDING)

    with pytest.raises(InvalidBookingState):
        PaymentService(db).submit_payment_proof(booking.id, client_user.id, "CLIENT", "CASH")


@pytest.mark.unit
def test_technician_cannot_submit_payment(db, make_booking, technician):
    booking = make_booking(status=S.AWAITING_PAYMENT)

    with pytest.raises(Forbidden):
        PaymentService(db).submit_payment_proof(booking.id, technician.id, "TECHNICIAN", "CASH")


# ===== Confirm payment =====

@pytest.mark.unit
def test_confirm_payment_completes_booking(db, make_booking, technician, client_user, notifier):
    booking = make_booking(
        status=S.AWAITING_PAYMENT,
        payment_status=PaymentStatus.PENDING,
        payment_method=PaymentMethod.CARD,
    )

    updated = PaymentService(db, notifier).confirm_payment(booking.id, technician.id, "TECHNICIAN")

    assert updated.payment_status == PaymentStatus.PAID
    assert updated.status == S.COMPLETED
    assert updated.payment_method == PaymentMethod.CARD
    [call] = notifier.calls
    assert call["event_type"] == NotificationType.BOOKING_COMPLETED
    assert call["recipient_id"] == client_user.id
    assert get_metrics_collector().get_counter_value(
        "booking_transitions_total",
        {"from_status": "AWAITING_PAYMENT", "to_status": "COMPLETED", "role": "SYSTEM"},
    ) == 1


@pytest.mark.unit
def test_confirm_in_person_cash_from_unpaid(db, make_booking, technician):
    booking = make_booking(status=S.AWAITING_PAYMENT)

    updated = PaymentService(db).confirm_payment(booking.id, technician.id, "TECHNICIAN")

    assert updated.status == S.COMPLETED
    assert updated.payment_method == PaymentMethod.CASH


@pytest.mark.unit
def test_confirm_payment_twice(db, make_booking, technician):
    booking = make_booking(status=S.COMPLETED)

    with pytest.raises(InvalidBookingState):
        PaymentService(db).confirm_payment(booking.id, technician.id, "TECHNICIAN")


@pytest.mark.unit
def test_confirm_payment_requires_awaiting_payment(db, make_booking, technician):
    booking = make_booking(status=S.IN_PROGRESS)

    with pytest.raises(InvalidBookingState):
        PaymentService(db).confirm_payment(booking.id, technician.id, "TECHNICIAN")


@pytest.mark.unit
def test_client_cannot_confirm_payment(db, make_booking, client_user):
    booking = make_booking(status=S.AWAITING_PAYMENT, payment_status=PaymentStatus.PENDING)

    with pytest.raises(Forbidden):
        PaymentService(db).confirm_payment(booking.id, client_user.id, "CLIENT")


@pytest.mark.unit
def test_completion_is_not_requestable_directly(db, make_booking, technician, client_user):
    booking = make_booking(status=S.AWAITING_PAYMENT, payment_status=PaymentStatus.PENDING)
    engine = BookingLifecycleEngine(db)

    with pytest.raises(Forbidden):
        engine.transition(booking.id, technician.id, "TECHNICIAN", S.COMPLETED)
    with pytest.raises(Forbidden):
        engine.transition(booking.id, client_user.id, "CLIENT", S.COMPLETED)
    with pytest.raises(InvalidTransition):
        engine.transition(booking.id, client_user.id, "CLIENT", S.PENDING)


@pytest.mark.unit
def test_system_completion_requires_paid(db, make_booking, technician):
    booking = make_booking(status=S.AWAITING_PAYMENT, payment_status=PaymentStatus.PENDING)

    with pytest.raises(PaymentNotConfirmed):
        BookingLifecycleEngine(db).apply(booking, technician.id, "SYSTEM", S.COMPLETED, {})


@pytest.mark.unit
def test_confirm_payment_is_atomic(db, make_booking, technician, notifier, session_factory):
    booking = make_booking(status=S.AWAITING_PAYMENT, payment_status=PaymentStatus.PENDING)

    def fail_commit(session):
        raise RuntimeError("database went away")

    event.listen(db, "before_commit", fail_commit)
    try:
        with pytest.raises(RuntimeError):
            PaymentService(db, notifier).confirm_payment(booking.id, technician.id, "TECHNICIAN")
    finally:
        event.remove(db, "before_commit", fail_commit)

    with session_factory() as fresh:
        stored = fresh.get(Booking, booking.id)
        assert stored.payment_status == PaymentStatus.PENDING
        assert stored.status == S.AWAITING_PAYMENT
    assert notifier.calls == []


# ===== Admin override =====

@pytest.mark.unit
def test_override_to_paid_requires_reason(db, make_booking, admin):
    booking = make_booking(status=S.AWAITING_PAYMENT, payment_status=PaymentStatus.PENDING)

    for reason in (None, "", "   "):
        with pytest.raises(ReasonRequired):
            PaymentService(db).set_payment_status(booking.id, admin.id, "ADMIN", "PAID", reason)

    assert db.query(PaymentAuditLog).count() == 0


@pytest.mark.unit
def test_override_to_paid_completes_and_audits(db, make_booking, admin, client_user, technician, notifier, caplog):
    booking = make_booking(status=S.AWAITING_PAYMENT, payment_status=PaymentStatus.PENDING)

    with caplog.at_level(logging.WARNING, logger=AUDIT_LOGGER_NAME):
        updated = PaymentService(db, notifier).set_payment_status(
            booking.id, admin.id, "ADMIN", "PAID", "Bank transfer verified by support"
        )

    assert updated.payment_status == PaymentStatus.PAID
    assert updated.status == S.COMPLETED
    assert_booking_invariants(db, updated)

    entry = db.query(PaymentAuditLog).one()
    assert entry.actor_id == admin.id
    assert entry.old_payment_status == "PENDING"
    assert entry.new_payment_status == "PAID"
    assert entry.old_status == "AWAITING_PAYMENT"
    assert entry.new_status == "COMPLETED"
    assert entry.reason == "Bank transfer verified by support"

    [record] = [r for r in caplog.records if r.name == AUDIT_LOGGER_NAME]
    assert record.levelno == logging.WARNING
    assert record.actor_id == str(admin.id)
    assert record.old_payment_status == "PENDING"
    assert record.new_payment_status == "PAID"
    assert record.reason == "Bank transfer verified by support"

    assert {c["recipient_id"] for c in notifier.calls} == {client_user.id, technician.id}
    assert get_metrics_collector().get_counter_value(
        "payment_overrides_total", {"new_payment_status": "PAID"}
    ) == 1


@pytest.mark.unit
def test_override_away_from_paid_without_reason(db, make_booking, admin):
    booking = make_booking(status=S.COMPLETED)

    updated = PaymentService(db).set_payment_status(booking.id, admin.id, "ADMIN", "UNPAID")

    assert updated.payment_status == PaymentStatus.UNPAID
    assert updated.status == S.COMPLETED
    assert_booking_invariants(db, updated)
    entry = db.query(PaymentAuditLog).one()
    assert entry.reason is None
    assert entry.old_payment_status == "PAID"


@pytest.mark.unit
def test_override_to_paid_without_final_price(db, make_booking, admin):
    booking = make_booking(status=S.IN_PROGRESS)

    with pytest.raises(InvalidBookingState):
        PaymentService(db).set_payment_status(booking.id, admin.id, "ADMIN", "PAID", "Paid upfront")

    db.refresh(booking)
    assert booking.payment_status == PaymentStatus.UNPAID
    assert db.query(PaymentAuditLog).count() == 0
    assert_booking_invariants(db, booking)


@pytest.mark.unit
@pytest.mark.parametrize("role,user_fixture", [("CLIENT", "client_user"), ("TECHNICIAN", "technician")])
def test_only_admins_override(db, make_booking, request, role, user_fixture):
    booking = make_booking(status=S.AWAITING_PAYMENT)
    user = request.getfixturevalue(user_fixture)

    with pytest.raises(Forbidden):
        PaymentService(db).set_payment_status(booking.id, user.id, role, "PAID", "because")


@pytest.mark.unit
def test_override_rejects_unknown_status(db, make_booking, admin):
    booking = make_booking(status=S.AWAITING_PAYMENT)

    with pytest.raises(InvalidInput):
        PaymentService(db).set_payment_status(booking.id, admin.id, "ADMIN", "REFUNDED", "x")


@pytest.mark.unit
def test_final_price_kept_on_completion(db, make_booking, technician):
    booking = make_booking(
        status=S.AWAITING_PAYMENT,
        payment_status=PaymentStatus.PENDING,
        final_price=Decimal("410.00"),
    )

    updated = PaymentService(db).confirm_payment(booking.id, technician.id, "TECHNICIAN")

    assert updated.final_price == Decimal("410.00")


@pytest.mark.unit
def test_confirm_after_admin_marked_payment_pending(db, make_booking, admin, client_user, technician, notifier):
    booking = make_booking(status=S.AWAITING_PAYMENT)
    service = PaymentService(db, notifier)
    service.set_payment_status(booking.id, admin.id, "ADMIN", "PENDING", "Client paid at the agency")
    notifier.calls.clear()

    updated = service.confirm_payment(booking.id, technician.id, "TECHNICIAN")

    assert updated.status == S.COMPLETED
    assert updated.payment_status == PaymentStatus.PAID
    assert updated.payment_method is None
    [call] = notifier.calls
    assert call["event_type"] == NotificationType.BOOKING_COMPLETED
    assert call["recipient_id"] == client_user.id
    assert_booking_invariants(db, updated)


@pytest.mark.unit
@pytest.mark.parametrize(
    "status,target",
    [
        (S.IN_PROGRESS, "PENDING"),
        (S.AWAITING_PAYMENT, "UNPAID"),
        (S.AWAITING_PAYMENT, "PAID"),
        (S.COMPLETED, "PENDING"),
    ],
)
def test_overrides_keep_booking_consistent(db, make_booking, admin, status, target):
    booking = make_booking(status=status)

    PaymentService(db).set_payment_status(booking.id, admin.id, "ADMIN", target, "Checked with support")

    assert_booking_invariants(db, booking)
