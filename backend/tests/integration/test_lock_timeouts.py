"""
Integration tests for lock timeouts.

A second session holds the slot lock through BookingStore.transaction()
while a service with a short lock timeout tries to use the same slot. On
SQLite the holder owns the database write lock (BEGIN IMMEDIATE); with
TEST_DATABASE_URL pointing at PostgreSQL it owns the slot's booking_locks
row. Either way the waiting request must give up within its own timeout
and report a retryable ConcurrencyConflictError.
"""

import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager

import pytest
from fastapi import status
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from api.appointments import get_appointment_service
from core.database import get_db
from core.exceptions import ConcurrencyConflictError
from main import app
from models import Appointment
from services.appointment_service import AppointmentService
from services.booking_store import BookingStore
from services.promotion_engine import PromotionEngine
from tests.conftest import SLOT_DATE, auth_headers, reload_appointment

SHORT_TIMEOUT_MS = 200


@contextmanager
def holding_slot_lock(session_factory, *lock_keys):
    """Hold the given booking locks in a separate session until the block exits."""
    session = session_factory()
    try:
        with BookingStore(session).transaction(*lock_keys):
            yield
    finally:
        session.close()


@pytest.fixture
def impatient_service(notification_service) -> AppointmentService:
    """AppointmentService that waits at most SHORT_TIMEOUT_MS for a lock."""
    return AppointmentService(notification_service=notification_service, lock_timeout_ms=SHORT_TIMEOUT_MS)


class TestBookingLockTimeout:
    """Test cases for create_booking against a held slot lock."""

    def test_times_out_as_retryable_conflict(self, db_session, session_factory, impatient_service,
                                             notification_sink, listing, slot_key):
        with holding_slot_lock(session_factory, slot_key.lock_key):
            with pytest.raises(ConcurrencyConflictError) as exc_info:
                impatient_service.create_booking(db_session, 101, listing.id, slot_key)

        assert exc_info.value.retryable is True
        assert exc_info.value.code == "concurrency_conflict"
        assert isinstance(exc_info.value.__cause__, OperationalError)
        assert db_session.query(Appointment).count() == 0
        db_session.commit()
        notification_sink.emit.assert_not_called()

    def test_retry_after_release_succeeds(self, db_session, session_factory, impatient_service, listing, slot_key):
        with holding_slot_lock(session_factory, slot_key.lock_key):
            with pytest.raises(ConcurrencyConflictError):
                impatient_service.create_booking(db_session, 101, listing.id, slot_key)

        result = impatient_service.create_booking(db_session, 101, listing.id, slot_key)

        assert result.appointment.status == "pending"
        assert result.is_queued is False

    def test_gives_up_within_its_own_timeout(self, db_session, session_factory, impatient_service,
                                             listing, slot_key):
        """Test that the store's timeout, not the engine default, bounds the wait."""
        started = time.monotonic()
        with holding_slot_lock(session_factory, slot_key.lock_key):
            with pytest.raises(ConcurrencyConflictError):
                impatient_service.create_booking(db_session, 101, listing.id, slot_key)
        elapsed = time.monotonic() - started

        # Engine default is SLOT_LOCK_TIMEOUT_MS (5 seconds)
        assert elapsed < 2.0

    def test_waits_for_a_lock_released_in_time(self, session_factory, notification_service, listing, slot_key):
        patient_service = AppointmentService(notification_service=notification_service, lock_timeout_ms=5000)

        def book():
            db = session_factory()
            try:
                return patient_service.create_booking(db, 101, listing.id, slot_key)
            finally:
                db.close()

        with ThreadPoolExecutor(max_workers=1) as pool:
            with holding_slot_lock(session_factory, slot_key.lock_key):
                future = pool.submit(book)
                time.sleep(0.3)
                assert not future.done()
            result = future.result(timeout=10)

        assert result.appointment.status == "pending"


class TestStatusChangeLockTimeout:
    """Test cases for request_status_change against a held slot lock."""

    def test_cancel_times_out_and_leaves_queue_intact(self, db_session, session_factory, appointment_service,
                                                      impatient_service, notification_sink, listing, slot_key):
        holder = appointment_service.create_booking(db_session, 101, listing.id, slot_key).appointment
        first = appointment_service.create_booking(db_session, 102, listing.id, slot_key).appointment
        second = appointment_service.create_booking(db_session, 103, listing.id, slot_key).appointment
        notification_sink.reset_mock()

        with holding_slot_lock(session_factory, slot_key.lock_key):
            with pytest.raises(ConcurrencyConflictError) as exc_info:
                impatient_service.request_status_change(db_session, holder.id, 101, "customer", "cancelled")

        assert exc_info.value.retryable is True
        assert isinstance(exc_info.value.__cause__, OperationalError)
        notification_sink.emit.assert_not_called()

        holder, first, second = (reload_appointment(db_session, a.id) for a in (holder, first, second))
        assert (holder.status, holder.queue_position) == ("pending", None)
        assert (first.status, first.queue_position) == ("queued", 1)
        assert (second.status, second.queue_position) == ("queued", 2)

    def test_retry_after_release_promotes(self, db_session, session_factory, appointment_service,
                                          impatient_service, listing, slot_key):
        holder = appointment_service.create_booking(db_session, 101, listing.id, slot_key).appointment
        queued = appointment_service.create_booking(db_session, 102, listing.id, slot_key).appointment

        with holding_slot_lock(session_factory, slot_key.lock_key):
            with pytest.raises(ConcurrencyConflictError):
                impatient_service.request_status_change(db_session, holder.id, 101, "customer", "cancelled")

        result = impatient_service.request_status_change(db_session, holder.id, 101, "customer", "cancelled")

        assert result.promoted.id == queued.id
        assert reload_appointment(db_session, queued.id).status == "confirmed"

    def test_promotion_engine_times_out(self, db_session, session_factory, appointment_service,
                                        listing, slot_key):
        holder = appointment_service.create_booking(db_session, 101, listing.id, slot_key).appointment
        engine = PromotionEngine(BookingStore(db_session, lock_timeout_ms=SHORT_TIMEOUT_MS))

        with holding_slot_lock(session_factory, slot_key.lock_key):
            with pytest.raises(ConcurrencyConflictError):
                engine.cancel_active_holder(holder.id)

        assert reload_appointment(db_session, holder.id).status == "pending"


class TestLockTimeoutEndpoint:
    """Test cases for lock timeouts surfacing through the API."""

    @pytest.fixture
    def client(self, db_session, impatient_service):
        def override_get_db():
            yield db_session

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_appointment_service] = lambda: impatient_service
        client = TestClient(app)
        yield client
        app.dependency_overrides.pop(get_db, None)
        app.dependency_overrides.pop(get_appointment_service, None)

    def test_conflict_is_409_and_retryable(self, client, session_factory, listing, slot_key):
        body = {
            "property_id": listing.id,
            "appointment_date": SLOT_DATE.isoformat(),
            "appointment_time": "10:00",
        }

        with holding_slot_lock(session_factory, slot_key.lock_key):
            response = client.post("/api/appointments", json=body, headers=auth_headers(101, "customer"))

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json() == {
            "success": False,
            "error": "This slot is being modified by another request, please try again.",
            "code": "concurrency_conflict",
            "retryable": True,
        }
