"""
Integration tests for the slot integrity scan.

Seeds inconsistent rows directly (bypassing the booking core) and checks
that find_slot_invariant_violations reports them.
"""

from datetime import datetime, timezone

from models import Appointment
from tests.conftest import SLOT_DATE, SLOT_TIME
from utils.appointment_queries import find_slot_invariant_violations


def seed(db_session, listing, customer_id, status, queue_position=None):
    appointment = Appointment(
        property_id=listing.id,
        customer_id=customer_id,
        appointment_date=SLOT_DATE,
        appointment_time=SLOT_TIME,
        booking_timestamp=datetime.now(timezone.utc),
        status=status,
        queue_position=queue_position,
    )
    db_session.add(appointment)
    db_session.commit()
    return appointment


class TestQueueIntegrity:
    """Test cases for find_slot_invariant_violations."""

    def test_consistent_slot(self, db_session, appointment_service, listing, slot_key):
        for customer_id in (101, 102, 103):
            appointment_service.create_booking(db_session, customer_id, listing.id, slot_key)

        assert find_slot_invariant_violations(db_session) == []

    def test_reports_gap_in_queue(self, db_session, listing):
        seed(db_session, listing, 101, "pending")
        seed(db_session, listing, 102, "queued", 1)
        seed(db_session, listing, 103, "queued", 3)

        violations = find_slot_invariant_violations(db_session)

        assert [v.kind for v in violations] == ["non_contiguous_queue"]
        assert violations[0].slot_key.property_id == listing.id

    def test_reports_duplicate_positions(self, db_session, listing):
        seed(db_session, listing, 101, "pending")
        seed(db_session, listing, 102, "queued", 1)
        seed(db_session, listing, 103, "queued", 1)

        assert [v.kind for v in find_slot_invariant_violations(db_session)] == ["non_contiguous_queue"]

    def test_property_filter(self, db_session, listing):
        seed(db_session, listing, 102, "queued", 2)

        assert find_slot_invariant_violations(db_session, property_id=listing.id + 1) == []
        assert len(find_slot_invariant_violations(db_session, property_id=listing.id)) == 1
