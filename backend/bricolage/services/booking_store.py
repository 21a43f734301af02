"""
Persistence helpers shared by every booking mutation.

Each mutation is one read-validate-write transaction: the booking row is read
with SELECT ... FOR UPDATE and written back with a version check, so two
concurrent requests cannot both apply a transition to the same snapshot.
"""
from contextlib import contextmanager
from typing import Any, Generator
from uuid import UUID

from sqlalchemy import select, exists
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from bricolage.api.middleware.error_handler import NotFoundException
from bricolage.lib.logging import get_logger
from bricolage.models.bookings import Booking
from bricolage.models.quotes import Quote
from bricolage.services.errors import ConcurrentUpdate


logger = get_logger(__name__)


def load_booking(db: Session, booking_id: UUID) -> Booking:
    """Read a booking without locking it."""
    booking = db.get(Booking, booking_id)
    if booking is None:
        raise NotFoundException("Booking", str(booking_id))
    return booking


def load_booking_for_update(db: Session, booking_id: UUID) -> Booking:
    """
    Read a booking and lock its row until the transaction ends.

    `populate_existing` makes sure guards are evaluated against the row as it
    is now, not against an instance cached in the session.
    """
    stmt = (
        select(Booking)
        .where(Booking.id == booking_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    booking = db.execute(stmt).scalar_one_or_none()
    if booking is None:
        raise NotFoundException("Booking", str(booking_id))
    return booking


def quote_exists(db: Session, booking_id: UUID) -> bool:
    """Guard predicate: is a quote on file for this booking?"""
    return bool(db.scalar(select(exists().where(Quote.booking_id == booking_id))))


@contextmanager
def booking_transaction(db: Session, booking_id: Any = None) -> Generator[None, None, None]:
    """
    Commit the work done inside the block, or roll all of it back.

    A version mismatch at flush time means another request won the race;
    it surfaces as ConcurrentUpdate. Any other error propagates unchanged.
    """
    try:
        yield
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        logger.warning(
            "Concurrent booking update rejected",
            extra={"booking_id": str(booking_id)},
        )
        raise ConcurrentUpdate(booking_id) from exc
    except Exception:
        db.rollback()
        raise
