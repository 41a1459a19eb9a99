"""
Test configuration and shared fixtures for the Property Viewing Booking test suite.

By default every test gets its own file-backed SQLite database under
tmp_path, built by running the Alembic migrations. SQLite transactions start
with BEGIN IMMEDIATE, so concurrent sessions in a test serialize on the
write lock.

Set TEST_DATABASE_URL to a PostgreSQL database to run the suite against the
production locking path instead (SET LOCAL lock_timeout, upserted lock rows,
SELECT ... FOR UPDATE). The schema is migrated once per session and the
tables are truncated after each test.
"""

import os

# Test database URL (PostgreSQL, opt-in)
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

# Keep the module-level engine off any real server; tests bind their own engines
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

import pytest
from datetime import date, time
from typing import Generator, Optional
from unittest.mock import Mock

from sqlalchemy import text
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import NullPool

from core.constants import PROPERTY_STATUS_AVAILABLE
from core.database import build_engine, drop_tables, upgrade_database

# Import all models to ensure they're registered with SQLAlchemy before any relationships are resolved
from models import Appointment, BlockedSlot, Property
from services.appointment_service import AppointmentService
from services.jwt_service import JWTService, TokenPayload
from services.notification_service import AuditSink, NotificationService, NotificationSink
from shared_types.slots import SlotKey

SLOT_DATE = date(2024, 1, 15)
SLOT_TIME = time(10, 0)
AGENT_ID = 900

TRUNCATE_TABLES = "appointments, blocked_slots, notifications, booking_locks, properties"


@pytest.fixture(scope="session")
def postgres_engine():
    """
    Create a PostgreSQL engine for the test session, migrated from scratch.

    Only requested when TEST_DATABASE_URL is set. Uses NullPool so every
    session in a test, including ones opened by worker threads, gets its own
    connection.
    """
    engine = build_engine(TEST_DATABASE_URL, poolclass=NullPool)

    # Run all migrations from scratch (base -> head)
    drop_tables(bind=engine)
    upgrade_database(TEST_DATABASE_URL)

    yield engine

    drop_tables(bind=engine)
    engine.dispose()


@pytest.fixture
def db_engine(request, tmp_path):
    """
    Provide a migrated, empty database for one test.

    SQLite (default): a new database file per test.
    PostgreSQL (TEST_DATABASE_URL): the session engine, truncated afterwards.
    """
    if TEST_DATABASE_URL:
        engine = request.getfixturevalue("postgres_engine")
        yield engine
        with engine.begin() as conn:
            # Fail fast instead of hanging if a test leaked an open transaction
            conn.execute(text("SET LOCAL lock_timeout = '10s'"))
            conn.execute(text(f"TRUNCATE {TRUNCATE_TABLES} RESTART IDENTITY CASCADE"))
        return

    database_url = f"sqlite:///{tmp_path / 'booking_test.db'}"
    upgrade_database(database_url)
    engine = build_engine(database_url, poolclass=NullPool)

    yield engine

    engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> sessionmaker:
    """Session factory for tests that need several sessions (threads, sinks)."""
    return sessionmaker(
        bind=db_engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    """Provide a database session for a test."""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def notification_sink():
    """Mock notification sink recording emit() calls."""
    return Mock(spec=NotificationSink)


@pytest.fixture
def audit_sink():
    """Mock audit sink recording record() calls."""
    return Mock(spec=AuditSink)


@pytest.fixture
def notification_service(notification_sink, audit_sink) -> NotificationService:
    return NotificationService(notifications=notification_sink, audit=audit_sink)


@pytest.fixture
def appointment_service(notification_service) -> AppointmentService:
    """AppointmentService wired to the mock sinks and a short lock timeout."""
    return AppointmentService(notification_service=notification_service, lock_timeout_ms=2000)


@pytest.fixture
def listing(db_session) -> Property:
    """A bookable property with an assigned agent."""
    return create_property(db_session, title="Sunny Loft", agent_id=AGENT_ID)


@pytest.fixture
def slot_key(listing) -> SlotKey:
    """The 2024-01-15 10:00:00 slot of the listing fixture."""
    return SlotKey(property_id=listing.id, date=SLOT_DATE, time=SLOT_TIME)


# Helper functions for seeding data

def create_property(
    db_session: Session,
    title: str = "Test Property",
    agent_id: Optional[int] = AGENT_ID,
    status: str = PROPERTY_STATUS_AVAILABLE,
    is_archived: bool = False
) -> Property:
    """
    Create and commit a property.

    Committing (rather than flushing) leaves the session without an open
    transaction, so other sessions can take the database write lock.
    """
    listing = Property(title=title, assigned_agent_id=agent_id, status=status, is_archived=is_archived)
    db_session.add(listing)
    db_session.commit()
    return listing


def block_slot(db_session: Session, slot_key: SlotKey, reason: str = "Owner unavailable") -> BlockedSlot:
    """Block a slot and commit."""
    blocked = BlockedSlot(
        property_id=slot_key.property_id,
        blocked_date=slot_key.date,
        blocked_time=slot_key.time,
        reason=reason,
        blocked_by=AGENT_ID,
    )
    db_session.add(blocked)
    db_session.commit()
    return blocked


def reload_appointment(db_session: Session, appointment_id: int) -> Appointment:
    """Re-read an appointment from the database, bypassing the identity map."""
    db_session.expire_all()
    appointment = db_session.get(Appointment, appointment_id)
    assert appointment is not None
    # End the read so other sessions can take the write lock
    db_session.commit()
    return appointment


def auth_headers(actor_id: int, role: str) -> dict[str, str]:
    """Authorization header carrying a JWT access token for an actor."""
    token = JWTService.create_access_token(TokenPayload(sub=str(actor_id), role=role))
    return {"Authorization": f"Bearer {token}"}
