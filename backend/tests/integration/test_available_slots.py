"""
Integration tests for available slot listing.
"""

import pytest
from datetime import date, time

from core.exceptions import PropertyUnavailableError
from services.appointment_service import AppointmentService
from shared_types.slots import SlotKey
from tests.conftest import SLOT_DATE, block_slot, create_property


class TestAvailableSlots:
    """Test cases for AppointmentService.get_available_slots."""

    def test_empty_day_lists_whole_grid(self, db_session, appointment_service, listing):
        slots = appointment_service.get_available_slots(db_session, listing.id, SLOT_DATE)

        assert slots.available_slots == [f"{hour:02d}:00:00" for hour in range(9, 18)]
        assert slots.blocked_slots == []
        assert slots.booked_slots == []

    def test_excludes_blocked_and_held_slots(self, db_session, appointment_service, listing, slot_key):
        appointment_service.create_booking(db_session, 101, listing.id, slot_key)
        block_slot(db_session, SlotKey(property_id=listing.id, date=SLOT_DATE, time=time(11, 0)))

        slots = appointment_service.get_available_slots(db_session, listing.id, SLOT_DATE)

        assert "10:00:00" not in slots.available_slots
        assert "11:00:00" not in slots.available_slots
        assert "09:00:00" in slots.available_slots
        assert slots.booked_slots == ["10:00:00"]
        assert slots.blocked_slots == ["11:00:00"]

    def test_queued_and_cancelled_bookings_do_not_count(self, db_session, appointment_service, listing, slot_key):
        holder = appointment_service.create_booking(db_session, 101, listing.id, slot_key).appointment
        appointment_service.create_booking(db_session, 102, listing.id, slot_key)
        other = SlotKey(property_id=listing.id, date=SLOT_DATE, time=time(13, 0))
        cancelled = appointment_service.create_booking(db_session, 103, listing.id, other).appointment
        appointment_service.request_status_change(db_session, cancelled.id, 103, "customer", "cancelled")

        slots = appointment_service.get_available_slots(db_session, listing.id, SLOT_DATE)

        # 10:00 is held by the pending booking; 13:00 was freed by the cancellation
        assert slots.booked_slots == ["10:00:00"]
        assert "13:00:00" in slots.available_slots
        assert holder.status == "pending"

    def test_other_dates_and_properties_are_ignored(self, db_session, appointment_service, listing, slot_key):
        appointment_service.create_booking(db_session, 101, listing.id, slot_key)
        other_listing = create_property(db_session, title="Garden Flat")

        assert "10:00:00" in appointment_service.get_available_slots(
            db_session, listing.id, date(2024, 1, 16)
        ).available_slots
        assert "10:00:00" in appointment_service.get_available_slots(
            db_session, other_listing.id, SLOT_DATE
        ).available_slots

    def test_custom_grid(self, db_session, notification_service, listing):
        service = AppointmentService(notification_service=notification_service, slot_times=["08:30", "18:00:00"])

        slots = service.get_available_slots(db_session, listing.id, SLOT_DATE)

        assert slots.available_slots == ["08:30:00", "18:00:00"]

    def test_unavailable_property(self, db_session, appointment_service):
        sold = create_property(db_session, status="sold")
        with pytest.raises(PropertyUnavailableError):
            appointment_service.get_available_slots(db_session, sold.id, SLOT_DATE)
