"""
Shared fixtures: in-memory database, actors, bookings at any lifecycle stage,
notification doubles and an HTTP client wired to the test database.
"""
import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("NOTIFICATION_PROVIDER", "null")
os.environ.setdefault("LOG_JSON", "false")

from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from bricolage.lib.db import Base
from bricolage.lib.jwt import create_access_token
from bricolage.lib.metrics import reset_metrics
from bricolage.models import (
    Booking,
    BookingStatus,
    PaymentMethod,
    PaymentStatus,
    Quote,
    TechnicianProfile,
    User,
    UserRole,
)


class RecordingNotifier:
    """Notifier double that keeps every call."""

    def __init__(self):
        self.calls = []

    def notify(self, recipient_id, event_type, booking_id, metadata):
        self.calls.append({
            "recipient_id": recipient_id,
            "event_type": event_type,
            "booking_id": booking_id,
            "metadata": metadata,
        })

    def events(self):
        return [call["event_type"] for call in self.calls]


class FailingNotifier:
    """Notifier double whose transport is always down."""

    def __init__(self):
        self.attempts = 0

    def notify(self, recipient_id, event_type, booking_id, metadata):
        self.attempts += 1
        raise ConnectionError("notification transport unavailable")


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def clean_metrics():
    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def failing_notifier():
    return FailingNotifier()


def make_user(db, role, name=None, available=True):
    user = User(
        name=name or f"{role.value.title()} {uuid4().hex[:6]}",
        email=f"{uuid4().hex[:10]}@example.com",
        role=role,
        city="Casablanca",
    )
    db.add(user)
    db.flush()
    if role is UserRole.TECHNICIAN:
        db.add(TechnicianProfile(user_id=user.id, years_of_experience=5, is_available=available))
    db.commit()
    return user


@pytest.fixture
def client_user(db):
    return make_user(db, UserRole.CLIENT, name="Salma")


@pytest.fixture
def technician(db):
    return make_user(db, UserRole.TECHNICIAN, name="Youssef")


@pytest.fixture
def other_client(db):
    return make_user(db, UserRole.CLIENT)


@pytest.fixture
def other_technician(db):
    return make_user(db, UserRole.TECHNICIAN)


@pytest.fixture
def admin(db):
    return make_user(db, UserRole.ADMIN)


@pytest.fixture
def make_booking(db, client_user, technician):
    """
    Insert a booking directly in the requested state.

    Fields that must agree with the status (final price, payment status, quote)
    are filled in consistently unless given explicitly.
    """

    def _make(
        status=BookingStatus.PENDING,
        payment_status=PaymentStatus.UNPAID,
        final_price=None,
        with_quote=None,
        payment_method=None,
        technician_id="assigned",
    ):
        if final_price is None and status in (BookingStatus.AWAITING_PAYMENT, BookingStatus.COMPLETED):
            final_price = Decimal("250.00")
        if status is BookingStatus.COMPLETED and payment_status is PaymentStatus.UNPAID:
            payment_status = PaymentStatus.PAID
        if with_quote is None:
            with_quote = status in (
                BookingStatus.IN_PROGRESS,
                BookingStatus.AWAITING_PAYMENT,
                BookingStatus.COMPLETED,
            )
        booking = Booking(
            client_id=client_user.id,
            technician_id=technician.id if technician_id == "assigned" else technician_id,
            category_id=uuid4(),
            description="Leaking kitchen sink",
            address="12 Rue Atlas",
            city="Casablanca",
            photos=[],
            is_urgent=False,
            status=status,
            estimated_price=Decimal("200.00"),
            final_price=final_price,
            payment_status=payment_status,
            payment_method=payment_method,
        )
        db.add(booking)
        db.flush()
        if with_quote:
            db.add(Quote(
                booking_id=booking.id,
                conditions="Parts included",
                equipment="Wrench, sealant",
                price=Decimal("230.00"),
            ))
        db.commit()
        return booking

    return _make


def auth_headers(user):
    token = create_access_token(str(user.id), user.role.value)
    return {"Authorization": f"Bearer {token}"}


def assert_booking_invariants(db, booking):
    """Check the cross-field rules every stored booking must satisfy."""
    stored = db.get(Booking, booking.id)
    db.refresh(stored)
    priced = stored.status in (BookingStatus.AWAITING_PAYMENT, BookingStatus.COMPLETED)
    assert (stored.final_price is not None) == priced
    if stored.payment_status is PaymentStatus.PAID:
        assert stored.status is BookingStatus.COMPLETED
    if db.query(Quote).filter(Quote.booking_id == stored.id).first() is not None:
        assert stored.status is not BookingStatus.PENDING


@pytest.fixture
def app(session_factory, notifier):
    """FastAPI app bound to the test database and the recording notifier."""
    from bricolage.api.app import app as fastapi_app
    from bricolage.api.dependencies import get_db, get_notifier

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[get_notifier] = lambda: notifier
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def http_client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
