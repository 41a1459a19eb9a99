"""
Shared types for slot-related functionality.

This module contains the value types passed between the booking store, the
slot resolver and the booking service, so that a slot is always identified
the same way.
"""

from dataclasses import dataclass, field
from datetime import date, time
from enum import Enum
from typing import List, Optional, Union

from core.constants import CUSTOMER_PROPERTY_LOCK_PREFIX, SLOT_LOCK_PREFIX
from utils.datetime_utils import (
    format_slot_date, format_slot_time, parse_slot_date, parse_slot_time
)


@dataclass(frozen=True, order=True)
class SlotKey:
    """
    Identifies a bookable unit: one property at one date and time.

    Instances are hashable and ordered, so they can key dicts and be sorted
    to get a stable lock order.
    """
    property_id: int
    date: date
    time: time

    @classmethod
    def parse(
        cls,
        property_id: int,
        slot_date: Union[str, date],
        slot_time: Union[str, time]
    ) -> "SlotKey":
        """Build a SlotKey from API-style values ("2024-01-15", "10:00:00")."""
        return cls(
            property_id=int(property_id),
            date=parse_slot_date(slot_date),
            time=parse_slot_time(slot_time),
        )

    @property
    def lock_key(self) -> str:
        """Row key used to serialize writers on this slot."""
        return f"{SLOT_LOCK_PREFIX}:{self.property_id}:{format_slot_date(self.date)}:{format_slot_time(self.time)}"

    def __str__(self) -> str:
        return f"property {self.property_id} on {format_slot_date(self.date)} at {format_slot_time(self.time)}"


def customer_property_lock_key(customer_id: int, property_id: int) -> str:
    """Row key used to serialize a customer's bookings on one property."""
    return f"{CUSTOMER_PROPERTY_LOCK_PREFIX}:{customer_id}:{property_id}"


class SlotState(Enum):
    OPEN = "open"
    ACTIVE_HELD = "active_held"
    BLOCKED = "blocked"


@dataclass(frozen=True)
class SlotResolution:
    """Outcome of resolving a slot: its state and, when held, the holder's id."""
    state: SlotState
    holder_id: Optional[int] = None

    @property
    def is_open(self) -> bool:
        return self.state is SlotState.OPEN

    @property
    def is_blocked(self) -> bool:
        return self.state is SlotState.BLOCKED


@dataclass
class AvailableSlots:
    """
    Bookable times for a property on one date.

    available_slots excludes both blocked times and times that already have
    an active holder; blocked_slots and booked_slots list those exclusions.
    """
    property_id: int
    date: date
    available_slots: List[str] = field(default_factory=list)
    blocked_slots: List[str] = field(default_factory=list)
    booked_slots: List[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        """Convert to dictionary format."""
        return {
            "property_id": self.property_id,
            "date": format_slot_date(self.date),
            "available_slots": list(self.available_slots),
            "blocked_slots": list(self.blocked_slots),
            "booked_slots": list(self.booked_slots),
        }
