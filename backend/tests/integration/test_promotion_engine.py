"""
Integration tests for queue promotion and queue-only cancellation.

Tests that cancelling the slot holder confirms the head of the queue and
shifts everyone else up, that cancelling a queued entry closes its gap, and
that a failure part-way leaves every row untouched.
"""

import pytest
from sqlalchemy.exc import OperationalError

from core.exceptions import ConcurrencyConflictError, InvalidTransitionError, NotFoundError
from services.booking_store import BookingStore
from services.notification_service import EVENT_BOOKING_PROMOTED
from services.promotion_engine import PromotionEngine
from utils.appointment_queries import count_active_holders, find_slot_invariant_violations
from tests.conftest import reload_appointment


@pytest.fixture
def booked_slot(db_session, appointment_service, listing, slot_key):
    """Holder A (101) with B (102) and C (103) queued at 1 and 2."""
    a = appointment_service.create_booking(db_session, 101, listing.id, slot_key).appointment
    b = appointment_service.create_booking(db_session, 102, listing.id, slot_key).appointment
    c = appointment_service.create_booking(db_session, 103, listing.id, slot_key).appointment
    return a, b, c


@pytest.fixture
def engine(db_session, notification_service):
    return PromotionEngine(BookingStore(db_session), notification_service)


class TestCancelActiveHolder:
    """Test cases for PromotionEngine.cancel_active_holder."""

    def test_promotes_head_and_shifts_queue(self, db_session, engine, booked_slot, slot_key):
        """Scenario: A cancels, B is confirmed and C moves to position 1."""
        a, b, c = booked_slot

        result = engine.cancel_active_holder(a.id)

        assert result.promoted is not None
        assert result.promoted.id == b.id
        assert result.shifted == 1

        a, b, c = (reload_appointment(db_session, x.id) for x in (a, b, c))
        assert (a.status, a.queue_position) == ("cancelled", None)
        assert (b.status, b.queue_position) == ("confirmed", None)
        assert (c.status, c.queue_position) == ("queued", 1)
        assert find_slot_invariant_violations(db_session) == []

    def test_promotion_preserves_relative_order(self, db_session, appointment_service, engine, listing, slot_key):
        holder = appointment_service.create_booking(db_session, 100, listing.id, slot_key).appointment
        queued = [
            appointment_service.create_booking(db_session, customer_id, listing.id, slot_key).appointment
            for customer_id in range(201, 206)
        ]

        engine.cancel_active_holder(holder.id)

        positions = {
            entry.id: reload_appointment(db_session, entry.id).queue_position for entry in queued[1:]
        }
        assert positions == {entry.id: index for index, entry in enumerate(queued[1:], start=1)}
        assert reload_appointment(db_session, queued[0].id).status == "confirmed"
        assert count_active_holders(db_session, slot_key) == 1

    def test_empty_queue_leaves_slot_open(self, db_session, appointment_service, engine, listing, slot_key):
        holder = appointment_service.create_booking(db_session, 101, listing.id, slot_key).appointment

        result = engine.cancel_active_holder(holder.id)

        assert result.promoted is None
        assert result.shifted == 0
        assert reload_appointment(db_session, holder.id).status == "cancelled"
        assert count_active_holders(db_session, slot_key) == 0

        # The freed slot can be booked again
        again = appointment_service.create_booking(db_session, 102, listing.id, slot_key)
        assert again.appointment.status == "pending"

    def test_confirmed_holder_can_be_cancelled(self, db_session, appointment_service, engine, booked_slot):
        a, b, _ = booked_slot
        appointment_service.request_status_change(db_session, a.id, a.agent_id, "agent", "confirmed")

        result = engine.cancel_active_holder(a.id)

        assert result.promoted.id == b.id

    def test_publishes_promotion_event(self, engine, booked_slot, notification_sink):
        a, b, _ = booked_slot
        notification_sink.reset_mock()

        engine.cancel_active_holder(a.id)

        notification_sink.emit.assert_called_once()
        event_type, payload = notification_sink.emit.call_args.args
        assert event_type == EVENT_BOOKING_PROMOTED
        assert payload["recipient_id"] == b.customer_id
        assert payload["cancelled_appointment_id"] == a.id
        assert "Sunny Loft" in payload["message"]

    def test_rejects_queued_appointment(self, engine, booked_slot):
        _, b, _ = booked_slot
        with pytest.raises(InvalidTransitionError):
            engine.cancel_active_holder(b.id)

    def test_missing_appointment(self, engine):
        with pytest.raises(NotFoundError):
            engine.cancel_active_holder(12345)


class TestCancelQueuedEntry:
    """Test cases for PromotionEngine.cancel_queued_entry."""

    def test_closes_gap_without_promotion(self, db_session, appointment_service, engine, listing, slot_key):
        holder = appointment_service.create_booking(db_session, 100, listing.id, slot_key).appointment
        queued = [
            appointment_service.create_booking(db_session, customer_id, listing.id, slot_key).appointment
            for customer_id in (201, 202, 203)
        ]

        engine.cancel_queued_entry(queued[1].id)

        assert reload_appointment(db_session, holder.id).status == "pending"
        removed = reload_appointment(db_session, queued[1].id)
        assert (removed.status, removed.queue_position) == ("cancelled", None)
        assert reload_appointment(db_session, queued[0].id).queue_position == 1
        assert reload_appointment(db_session, queued[2].id).queue_position == 2
        assert find_slot_invariant_violations(db_session) == []

    def test_cancelling_tail_moves_nobody(self, db_session, engine, booked_slot):
        _, b, c = booked_slot

        engine.cancel_queued_entry(c.id)

        assert reload_appointment(db_session, b.id).queue_position == 1

    def test_rejects_active_holder(self, engine, booked_slot):
        a, _, _ = booked_slot
        with pytest.raises(InvalidTransitionError):
            engine.cancel_queued_entry(a.id)


class TestAtomicity:
    """Test cases for rollback when a step fails."""

    def test_storage_failure_rolls_back_everything(self, db_session, engine, booked_slot, notification_sink,
                                                   monkeypatch):
        a, b, c = booked_slot
        notification_sink.reset_mock()

        def fail_shift(self, slot_key, above_position):
            raise OperationalError("UPDATE appointments", {}, Exception("lock timeout"))

        monkeypatch.setattr(BookingStore, "shift_queue_down", fail_shift)

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            engine.cancel_active_holder(a.id)

        assert exc_info.value.retryable is True
        assert isinstance(exc_info.value.__cause__, OperationalError)

        a, b, c = (reload_appointment(db_session, x.id) for x in (a, b, c))
        assert (a.status, a.queue_position) == ("pending", None)
        assert (b.status, b.queue_position) == ("queued", 1)
        assert (c.status, c.queue_position) == ("queued", 2)
        notification_sink.emit.assert_not_called()

    def test_retry_after_failure_succeeds(self, db_session, engine, booked_slot, monkeypatch):
        a, b, _ = booked_slot
        original = BookingStore.shift_queue_down
        calls = {"count": 0}

        def flaky_shift(self, slot_key, above_position):
            calls["count"] += 1
            if calls["count"] == 1:
                raise OperationalError("UPDATE appointments", {}, Exception("deadlock detected"))
            return original(self, slot_key, above_position)

        monkeypatch.setattr(BookingStore, "shift_queue_down", flaky_shift)

        with pytest.raises(ConcurrencyConflictError):
            engine.cancel_active_holder(a.id)
        result = engine.cancel_active_holder(a.id)

        assert result.promoted.id == b.id

    def test_notification_failure_keeps_promotion(self, db_session, engine, booked_slot, notification_sink):
        a, b, c = booked_slot
        notification_sink.emit.side_effect = RuntimeError("push service unavailable")

        result = engine.cancel_active_holder(a.id)

        assert result.promoted.id == b.id
        assert reload_appointment(db_session, b.id).status == "confirmed"
        assert reload_appointment(db_session, c.id).queue_position == 1
