"""
Unit tests for Appointment model helpers.

Tests the derived properties used by services and notification text.
"""

from datetime import date, time

from models import Appointment, Property
from shared_types.slots import SlotKey


class TestAppointmentHelpers:
    """Test cases for Appointment convenience properties."""

    def test_property_title_uses_listing(self):
        appointment = Appointment(property_id=7, listing=Property(id=7, title="Harbour View"))

        assert appointment.property_title == "Harbour View"

    def test_property_title_falls_back_to_id(self):
        """Test the fallback when the listing is not loaded."""
        appointment = Appointment(property_id=7)

        assert appointment.property_title == "property 7"

    def test_slot_key_and_queue_flag(self):
        appointment = Appointment(
            property_id=7,
            appointment_date=date(2024, 1, 15),
            appointment_time=time(10, 0),
            status="queued",
            queue_position=1,
        )

        assert appointment.slot_key == SlotKey(property_id=7, date=date(2024, 1, 15), time=time(10, 0))
        assert appointment.is_queued is True
