"""Shared fixtures: in-memory database, users, clock and an API client"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["RESEND_API_KEY"] = ""
os.environ["AUTOMATION_WEBHOOK_URL"] = ""

from datetime import date, datetime, timedelta  # noqa: E402
from itertools import count  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from carebook import models  # noqa: E402, F401
from carebook.auth import CurrentUser, get_current_user  # noqa: E402
from carebook.database import Base, get_db  # noqa: E402
from carebook.main import app  # noqa: E402
from carebook.models import (  # noqa: E402
    Availability,
    Doctor,
    Role,
    Schedule,
    Slot,
    SlotStatus,
    User,
)
from carebook.payments import PaymentIntent, get_payment_gateway  # noqa: E402

# Monday 2030-06-03 08:00 UTC
NOW = datetime(2030, 6, 3, 8, 0)


class FakeNotifier:
    """Records notifications instead of queueing deliveries"""

    def __init__(self):
        self.booked_ids = []
        self.cancelled_ids = []
        self.rescheduled_ids = []

    def booked(self, appointment):
        self.booked_ids.append(appointment.id)

    def cancelled(self, appointment, reason=None):
        self.cancelled_ids.append(appointment.id)

    def rescheduled(self, appointment, previous_start_time=None):
        self.rescheduled_ids.append(appointment.id)


class FakePaymentGateway:
    """Payment gateway that hands out deterministic intents"""

    def __init__(self, configured=True):
        self.configured = configured
        self.intents = []
        self._ids = count(1)

    def is_configured(self):
        return self.configured

    def create_payment_intent(self, amount_cents, currency, metadata):
        intent_id = f"pi_test_{next(self._ids)}"
        self.intents.append({"id": intent_id, "amount": amount_cents, "currency": currency, "metadata": metadata})
        return PaymentIntent(id=intent_id, client_secret=f"{intent_id}_secret")


def as_actor(user: User) -> CurrentUser:
    return CurrentUser(
        id=user.id,
        role=user.role,
        email=user.email,
        doctor_id=user.doctor_profile.id if user.doctor_profile else None,
    )


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db_session):
    counter = count(1)

    def _make_user(role=Role.PATIENT, full_name=None):
        n = next(counter)
        user = User(email=f"{role.lower()}{n}@example.com", full_name=full_name or f"{role.title()} {n}", role=role)
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_doctor(db_session, make_user):
    def _make_doctor(price=50.0, full_name=None):
        user = make_user(Role.DOCTOR, full_name=full_name)
        doctor = Doctor(user_id=user.id, specialization="General Practice", appointment_price=price)
        db_session.add(doctor)
        db_session.commit()
        db_session.refresh(doctor)
        db_session.refresh(user)
        return doctor

    return _make_doctor


@pytest.fixture
def doctor(make_doctor):
    return make_doctor(full_name="Ada Grey")


@pytest.fixture
def patient(make_user):
    return make_user(Role.PATIENT, full_name="Pat Doe")


@pytest.fixture
def admin(make_user):
    return make_user(Role.ADMIN, full_name="Ann Admin")


@pytest.fixture
def doctor_actor(doctor):
    return as_actor(doctor.user)


@pytest.fixture
def patient_actor(patient):
    return as_actor(patient)


@pytest.fixture
def admin_actor(admin):
    return as_actor(admin)


@pytest.fixture
def make_availability(db_session):
    def _make_availability(doctor, start, end, **extra):
        availability = Availability(doctor_id=doctor.id, start_time=start, end_time=end, **extra)
        db_session.add(availability)
        db_session.commit()
        db_session.refresh(availability)
        return availability

    return _make_availability


@pytest.fixture
def make_slot(db_session):
    def _make_slot(doctor, start, minutes=30, status=SlotStatus.AVAILABLE, availability=None):
        slot = Slot(
            doctor_id=doctor.id,
            availability_id=availability.id if availability else None,
            start_time=start,
            end_time=start + timedelta(minutes=minutes),
            status=status,
        )
        db_session.add(slot)
        db_session.commit()
        db_session.refresh(slot)
        return slot

    return _make_slot


@pytest.fixture
def make_schedule(db_session):
    def _make_schedule(doctor, on_date=date(2030, 6, 4), start="09:00", end="12:00", max_patients=5):
        schedule = Schedule(
            doctor_id=doctor.id, date=on_date, start_time=start, end_time=end, max_patients=max_patients
        )
        db_session.add(schedule)
        db_session.commit()
        db_session.refresh(schedule)
        return schedule

    return _make_schedule


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def payment_gateway():
    return FakePaymentGateway()


@pytest.fixture
def client(db_session, payment_gateway):
    """TestClient bound to the test session; call client.act_as(user) to authenticate"""

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: payment_gateway
    test_client = TestClient(app)

    def act_as(user):
        actor = as_actor(user)
        app.dependency_overrides[get_current_user] = lambda: actor
        return actor

    test_client.act_as = act_as
    yield test_client
    app.dependency_overrides.clear()
