'''
Pytest configuration for the FastAPI application.

This file sets up fixtures for:
1. Forcing the application into TEST_MODE before any code is imported.
2. Providing a fresh database (in-memory SQLite unless DATABASE_URL_TEST says
   otherwise) with a small seeded data set for each test.
3. Providing an httpx AsyncClient wired to the app for endpoint testing.
4. Providing instances of all service classes, pre-injected with the test session.
'''

import os
os.environ["TEST_MODE"] = "True"
os.environ.setdefault("SECRET_KEY", "tutor-booking-test-secret")
os.environ.setdefault("DATABASE_URL_PROD", "postgresql+psycopg://localhost/tutor_booking_unused")

import pytest
from typing import AsyncGenerator

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, AsyncEngine

# --- Constant Imports ----
from tests.constants import (
    TEST_ADMIN_ID, TEST_ADMIN_EMAIL,
    TEST_TUTOR_ID, TEST_TUTOR_EMAIL,
    TEST_UNRELATED_TUTOR_ID, TEST_UNRELATED_TUTOR_EMAIL,
    TEST_STUDENT_ID, TEST_STUDENT_EMAIL,
    TEST_OTHER_STUDENT_ID, TEST_OTHER_STUDENT_EMAIL,
    TEST_STUDENT_MINUTES, TEST_OTHER_STUDENT_MINUTES,
)
from tests.database import factories

# --- Application Imports ---
from tutor_booking_backend.main import app
from tutor_booking_backend.common.config import settings
from tutor_booking_backend.database.engine import build_engine, build_session_factory, create_schema, get_db_session
from tutor_booking_backend.database import models as db_models
from tutor_booking_backend.core.events import EventPublisher, get_event_publisher
from tutor_booking_backend.services.security import JWTHandler
from tutor_booking_backend.services.user_service import UserService
from tutor_booking_backend.services.appointment_service import AppointmentStore
from tutor_booking_backend.services.availability_service import AvailabilityService
from tutor_booking_backend.services.slot_service import SlotService
from tutor_booking_backend.services.balance_service import BalanceLedger
from tutor_booking_backend.services.booking_service import BookingService


@pytest.fixture(scope="session")
def anyio_backend():
    """
    Override the default 'anyio_backend' fixture.
    1. Forces the backend to 'asyncio' (solves 'trio' error).
    2. Promotes the scope to 'session' (solves 'ScopeMismatch').
    """
    return "asyncio"


# --- 1. Database Fixtures ---

@pytest.fixture(scope="function")
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """A brand-new database per test. In-memory SQLite dies with its engine."""
    assert settings.TEST_MODE is True, \
        "TEST_MODE was not set to True! Check your .env file or environment."

    engine = build_engine(settings.DATABASE_URL_TEST)
    await create_schema(engine)
    try:
        yield engine
    finally:
        async with engine.begin() as conn:
            await conn.run_sync(db_models.Base.metadata.drop_all)
        await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine: AsyncEngine):
    return build_session_factory(db_engine)


@pytest.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """
    The session used by service-level tests and by the factories.
    The seeded data set is flushed (not committed) into it.
    """
    session = session_factory()
    factories.test_db_session = session
    try:
        yield session
    finally:
        factories.test_db_session = None
        await session.rollback()
        await session.close()


@pytest.fixture(scope="function")
async def seeded_db(db_session: AsyncSession) -> AsyncSession:
    """
    Seeds: one admin, two tutors, two students. The main tutor works
    Mondays 09:00-17:00 UTC; the students hold general (course-less) balances.
    """
    factories.AdminFactory(id=TEST_ADMIN_ID, email=TEST_ADMIN_EMAIL)
    factories.TutorFactory(id=TEST_TUTOR_ID, email=TEST_TUTOR_EMAIL)
    factories.TutorFactory(id=TEST_UNRELATED_TUTOR_ID, email=TEST_UNRELATED_TUTOR_EMAIL)
    factories.StudentFactory(id=TEST_STUDENT_ID, email=TEST_STUDENT_EMAIL)
    factories.StudentFactory(id=TEST_OTHER_STUDENT_ID, email=TEST_OTHER_STUDENT_EMAIL)
    await db_session.flush()

    factories.RecurringWindowFactory(tutor_id=TEST_TUTOR_ID)
    factories.BalanceFactory(student_id=TEST_STUDENT_ID, total_purchased_minutes=TEST_STUDENT_MINUTES)
    factories.BalanceFactory(student_id=TEST_OTHER_STUDENT_ID, total_purchased_minutes=TEST_OTHER_STUDENT_MINUTES)
    await db_session.flush()
    return db_session


# --- 2. Data Fixtures ---

@pytest.fixture(scope="function")
async def test_admin_orm(seeded_db: AsyncSession) -> db_models.Users:
    admin = await seeded_db.get(db_models.Users, TEST_ADMIN_ID)
    assert admin is not None, f"Test admin with ID {TEST_ADMIN_ID} not found in DB."
    return admin

@pytest.fixture(scope="function")
async def test_tutor_orm(seeded_db: AsyncSession) -> db_models.Users:
    tutor = await seeded_db.get(db_models.Users, TEST_TUTOR_ID)
    assert tutor is not None, f"Test tutor with ID {TEST_TUTOR_ID} not found in DB."
    return tutor

@pytest.fixture(scope="function")
async def test_unrelated_tutor_orm(seeded_db: AsyncSession) -> db_models.Users:
    tutor = await seeded_db.get(db_models.Users, TEST_UNRELATED_TUTOR_ID)
    assert tutor is not None, f"Test tutor with ID {TEST_UNRELATED_TUTOR_ID} not found in DB."
    return tutor

@pytest.fixture(scope="function")
async def test_student_orm(seeded_db: AsyncSession) -> db_models.Users:
    student = await seeded_db.get(db_models.Users, TEST_STUDENT_ID)
    assert student is not None, f"Test student with ID {TEST_STUDENT_ID} not found in DB."
    return student

@pytest.fixture(scope="function")
async def test_other_student_orm(seeded_db: AsyncSession) -> db_models.Users:
    student = await seeded_db.get(db_models.Users, TEST_OTHER_STUDENT_ID)
    assert student is not None, f"Test student with ID {TEST_OTHER_STUDENT_ID} not found in DB."
    return student


# --- 3. Service Fixtures ---

@pytest.fixture(scope="function")
def event_publisher() -> EventPublisher:
    """A private publisher per test, so subscriptions never leak between tests."""
    return EventPublisher()

@pytest.fixture(scope="function")
def published_events(event_publisher: EventPublisher) -> list:
    """Every event published during the test, in order."""
    events = []
    from tutor_booking_backend.core import events as event_types
    for event_type in (
        event_types.AppointmentBooked,
        event_types.AppointmentCancelled,
        event_types.AppointmentRescheduled,
        event_types.AppointmentCompleted,
    ):
        event_publisher.subscribe(event_type, events.append)
    return events

@pytest.fixture(scope="function")
def user_service(db_session: AsyncSession) -> UserService:
    return UserService(db=db_session)

@pytest.fixture(scope="function")
def appointment_store(db_session: AsyncSession) -> AppointmentStore:
    return AppointmentStore(db=db_session)

@pytest.fixture(scope="function")
def availability_service(
    db_session: AsyncSession,
    user_service: UserService,
    appointment_store: AppointmentStore
) -> AvailabilityService:
    return AvailabilityService(db=db_session, user_service=user_service, appointment_store=appointment_store)

@pytest.fixture(scope="function")
def slot_service(
    db_session: AsyncSession,
    user_service: UserService,
    availability_service: AvailabilityService,
    appointment_store: AppointmentStore
) -> SlotService:
    return SlotService(
        db=db_session,
        user_service=user_service,
        availability_service=availability_service,
        appointment_store=appointment_store
    )

@pytest.fixture(scope="function")
def balance_ledger(db_session: AsyncSession, appointment_store: AppointmentStore) -> BalanceLedger:
    return BalanceLedger(db=db_session, appointment_store=appointment_store)

@pytest.fixture(scope="function")
def booking_service(
    db_session: AsyncSession,
    user_service: UserService,
    slot_service: SlotService,
    appointment_store: AppointmentStore,
    balance_ledger: BalanceLedger,
    event_publisher: EventPublisher,
    published_events: list
) -> BookingService:
    return BookingService(
        db=db_session,
        user_service=user_service,
        slot_service=slot_service,
        appointment_store=appointment_store,
        ledger=balance_ledger,
        publisher=event_publisher
    )


# --- 4. API Fixtures ---

@pytest.fixture(scope="function")
async def client(
    seeded_db: AsyncSession,
    session_factory,
    event_publisher: EventPublisher,
    published_events: list
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """
    An httpx client talking to the app in-process.

    The seeded data is committed first: requests get their own sessions from
    the test engine, committed or rolled back just like `get_db_session` does.
    """
    await seeded_db.commit()

    async def override_get_db_session() -> AsyncGenerator[AsyncSession, None]:
        session = session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    app.dependency_overrides[get_db_session] = override_get_db_session
    app.dependency_overrides[get_event_publisher] = lambda: event_publisher

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()


def auth_headers(email: str) -> dict:
    """A bearer header for the user with `email`."""
    return {"Authorization": f"Bearer {JWTHandler.create_access_token(subject=email)}"}

@pytest.fixture(scope="function")
def student_headers() -> dict:
    return auth_headers(TEST_STUDENT_EMAIL)

@pytest.fixture(scope="function")
def other_student_headers() -> dict:
    return auth_headers(TEST_OTHER_STUDENT_EMAIL)

@pytest.fixture(scope="function")
def tutor_headers() -> dict:
    return auth_headers(TEST_TUTOR_EMAIL)

@pytest.fixture(scope="function")
def admin_headers() -> dict:
    return auth_headers(TEST_ADMIN_EMAIL)
