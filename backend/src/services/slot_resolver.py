"""
Slot state resolution and queue position assignment.

Both classes read through a BookingStore and must be called inside the
store's slot-scoped transaction: their answers are only authoritative while
the slot lock is held.
"""

import logging

from services.availability_service import BlockedSlotProvider
from services.booking_store import BookingStore
from shared_types.slots import SlotKey, SlotResolution, SlotState

logger = logging.getLogger(__name__)


class SlotStateResolver:
    """Decides whether a slot is open, held by an active booking, or blocked."""

    def __init__(self, store: BookingStore, blocked_slots: BlockedSlotProvider):
        self.store = store
        self.blocked_slots = blocked_slots

    def resolve(self, slot_key: SlotKey) -> SlotResolution:
        """
        Resolve the current state of a slot.

        A block takes precedence over an active holder, so requests for a
        blocked slot are rejected rather than queued.
        """
        if self.blocked_slots.is_blocked(self.store.db, slot_key):
            return SlotResolution(SlotState.BLOCKED)

        holder = self.store.find_active_holder(slot_key)
        if holder is not None:
            return SlotResolution(SlotState.ACTIVE_HELD, holder_id=holder.id)

        return SlotResolution(SlotState.OPEN)


class QueueAssigner:
    """Computes the next queue position for a held slot."""

    def __init__(self, store: BookingStore):
        self.store = store

    def next_position(self, slot_key: SlotKey) -> int:
        """
        Next free position at the tail of the slot's queue (1 if empty).

        Derived from the slot's current rows under the slot lock, never from
        a counter kept between requests.
        """
        if not self.store.in_transaction:
            raise RuntimeError("Queue positions can only be assigned under the slot lock")
        return self.store.max_queue_position(slot_key) + 1
