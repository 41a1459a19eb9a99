"""
Availability service: blocked slots, bookable properties and free slot listing.

The blocked-slot and property providers are the booking core's view of data
owned by other parts of the system. Anything with the same methods can be
passed to AppointmentService in their place.
"""

import logging
from datetime import date as date_type
from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from core.config import BOOKING_SLOT_TIMES
from core.exceptions import PropertyUnavailableError
from models import BlockedSlot, Property
from services.booking_store import BookingStore
from shared_types.slots import AvailableSlots, SlotKey
from utils.datetime_utils import format_slot_time, parse_slot_time

logger = logging.getLogger(__name__)


class BlockedSlotProvider:
    """Reads agent-blocked slots from the blocked_slots table."""

    def is_blocked(self, db: Session, slot_key: SlotKey) -> bool:
        stmt = select(BlockedSlot.id).where(
            BlockedSlot.property_id == slot_key.property_id,
            BlockedSlot.blocked_date == slot_key.date,
            BlockedSlot.blocked_time == slot_key.time,
        ).limit(1)
        return db.execute(stmt).first() is not None

    def blocked_times(self, db: Session, property_id: int, slot_date: date_type) -> List[str]:
        stmt = select(BlockedSlot.blocked_time).where(
            BlockedSlot.property_id == property_id,
            BlockedSlot.blocked_date == slot_date,
        )
        return sorted(format_slot_time(value) for value in db.execute(stmt).scalars().all())


class PropertyAvailabilityProvider:
    """Confirms a property exists and is open for viewing requests."""

    def get_bookable_property(self, db: Session, property_id: int) -> Property:
        """
        Load a property that can take bookings.

        Raises:
            PropertyUnavailableError: If the property does not exist, is
                archived, or its status is not 'available'
        """
        listing = db.get(Property, property_id)
        if listing is None or not listing.is_bookable:
            logger.warning(f"Property {property_id} is not bookable")
            raise PropertyUnavailableError()
        return listing


class AvailabilityService:
    """Computes the free slots of a property on a date from committed data."""

    def __init__(
        self,
        blocked_slots: Optional[BlockedSlotProvider] = None,
        properties: Optional[PropertyAvailabilityProvider] = None,
        slot_times: Optional[Sequence[str]] = None
    ):
        self.blocked_slots = blocked_slots or BlockedSlotProvider()
        self.properties = properties or PropertyAvailabilityProvider()
        grid = slot_times if slot_times is not None else BOOKING_SLOT_TIMES
        self.slot_times = [format_slot_time(parse_slot_time(value)) for value in grid]

    def get_available_slots(self, db: Session, property_id: int, slot_date: date_type) -> AvailableSlots:
        """
        List bookable times for a property on a date.

        Read-only and unsynchronized: a slot reported free here can still be
        taken by the time a booking request arrives, in which case that
        request is queued.

        Args:
            db: Database session
            property_id: Property ID
            slot_date: Date to list

        Returns:
            AvailableSlots with the free, blocked and booked times

        Raises:
            PropertyUnavailableError: If the property cannot take bookings
        """
        self.properties.get_bookable_property(db, property_id)

        blocked = self.blocked_slots.blocked_times(db, property_id, slot_date)
        booked = sorted(
            format_slot_time(appointment.appointment_time)
            for appointment in BookingStore(db).booked_times(property_id, slot_date)
        )
        unavailable = set(blocked) | set(booked)

        return AvailableSlots(
            property_id=property_id,
            date=slot_date,
            available_slots=[slot for slot in self.slot_times if slot not in unavailable],
            blocked_slots=blocked,
            booked_slots=booked,
        )
