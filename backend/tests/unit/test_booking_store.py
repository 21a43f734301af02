"""
Unit tests for the locked read-validate-write transaction helpers.
"""
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from bricolage.api.middleware.error_handler import NotFoundException
from bricolage.models import Booking, BookingStatus
from bricolage.services.booking_store import (
    booking_transaction,
    load_booking,
    load_booking_for_update,
    quote_exists,
)
from bricolage.services.errors import ConcurrentUpdate, InvalidTransition
from bricolage.services.lifecycle import BookingLifecycleEngine


S = BookingStatus


@pytest.mark.unit
def test_load_missing_booking(db):
    with pytest.raises(NotFoundException):
        load_booking(db, uuid4())
    with pytest.raises(NotFoundException):
        load_booking_for_update(db, uuid4())


@pytest.mark.unit
def test_locked_load_refreshes_cached_instance(db, make_booking, session_factory):
    booking = make_booking(status=S.PENDING)

    with session_factory() as other:
        other.get(Booking, booking.id).status = S.DECLINED
        other.commit()

    assert booking.status == S.PENDING
    reloaded = load_booking_for_update(db, booking.id)
    assert reloaded is booking
    assert reloaded.status == S.DECLINED
    db.rollback()


@pytest.mark.unit
def test_quote_exists(db, make_booking):
    assert quote_exists(db, make_booking(status=S.IN_PROGRESS).id)
    assert not quote_exists(db, make_booking(status=S.ACCEPTED, with_quote=False).id)


@pytest.mark.unit
def test_stale_write_becomes_concurrent_update(db, make_booking, session_factory):
    booking = make_booking(status=S.PENDING)

    # A second request accepts the booking after ours read it
    with session_factory() as other:
        other.get(Booking, booking.id).status = S.ACCEPTED
        other.commit()

    with pytest.raises(ConcurrentUpdate) as exc_info:
        with booking_transaction(db, booking.id):
            booking.status = S.DECLINED

    assert exc_info.value.status_code == 409
    with session_factory() as fresh:
        stored = fresh.get(Booking, booking.id)
        assert stored.status == S.ACCEPTED
        assert stored.version == 2


@pytest.mark.unit
def test_second_of_two_racing_transitions_is_rejected(db, make_booking, technician, session_factory):
    booking = make_booking(status=S.PENDING)

    with session_factory() as first:
        BookingLifecycleEngine(first).transition(booking.id, technician.id, "TECHNICIAN", S.ACCEPTED)

    # The loser re-reads under lock and sees the committed status
    with pytest.raises(InvalidTransition):
        BookingLifecycleEngine(db).transition(booking.id, technician.id, "TECHNICIAN", S.DECLINED)

    with session_factory() as fresh:
        assert fresh.get(Booking, booking.id).status == S.ACCEPTED


@pytest.mark.unit
def test_other_errors_roll_back_and_propagate(db, make_booking):
    booking = make_booking(status=S.PENDING)

    with pytest.raises(OperationalError):
        with booking_transaction(db, booking.id):
            booking.description = "changed"
            raise OperationalError("UPDATE", {}, Exception("connection lost"))

    db.refresh(booking)
    assert booking.description == "Leaking kitchen sink"
