"""
Promotion engine: cancellation of slot holders and queue reindexing.

When the active holder of a slot cancels, the head of the slot's queue is
confirmed and everyone behind it moves up one place. Cancelling a queued
entry only closes the gap it leaves. Both run as one transaction under the
slot lock: either every row changes or none does.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from core.constants import (
    ACTIVE_HOLDER_STATUSES, STATUS_CANCELLED, STATUS_CONFIRMED, STATUS_QUEUED
)
from core.exceptions import InvalidTransitionError, NotFoundError
from models import Appointment
from services.booking_store import BookingStore
from services.notification_service import BookingEvent, NotificationService

logger = logging.getLogger(__name__)


@dataclass
class PromotionResult:
    """Outcome of cancelling an active holder."""
    cancelled: Appointment
    promoted: Optional[Appointment] = None
    shifted: int = 0


class PromotionEngine:
    """
    Cancels appointments and keeps the slot queue contiguous.

    cancel_active_holder() and cancel_queued_entry() each open their own
    slot-scoped transaction. promote_after_cancel() and remove_from_queue()
    are the same steps for callers that already hold the slot lock.
    """

    def __init__(self, store: BookingStore, notification_service: Optional[NotificationService] = None):
        self.store = store
        self.notification_service = notification_service

    def cancel_active_holder(self, appointment_id: int) -> PromotionResult:
        """
        Cancel a pending/confirmed appointment and promote the head of its queue.

        Args:
            appointment_id: ID of the active holder to cancel

        Returns:
            PromotionResult with the newly confirmed appointment, or
            promoted=None when nobody was queued

        Raises:
            NotFoundError: If the appointment does not exist
            InvalidTransitionError: If the appointment is not an active holder
            ConcurrencyConflictError: If the transaction could not complete;
                nothing was changed and the call can be retried
        """
        with self.store.read():
            slot_key = self._load(appointment_id).slot_key

        events: List[BookingEvent] = []
        with self.store.transaction(slot_key.lock_key):
            locked = self._load(appointment_id, for_update=True)
            if locked.status not in ACTIVE_HOLDER_STATUSES:
                raise InvalidTransitionError(
                    f"Appointment {appointment_id} is '{locked.status}', not an active holder."
                )
            result = self.promote_after_cancel(locked)
            if result.promoted is not None:
                events.append(NotificationService.booking_promoted(
                    result.promoted, result.promoted.property_title, locked.id
                ))

        self._publish(events)
        return result

    def cancel_queued_entry(self, appointment_id: int) -> Appointment:
        """
        Cancel a queued appointment and close the gap in its slot's queue.

        Raises:
            NotFoundError: If the appointment does not exist
            InvalidTransitionError: If the appointment is not queued
            ConcurrencyConflictError: If the transaction could not complete
        """
        with self.store.read():
            slot_key = self._load(appointment_id).slot_key

        with self.store.transaction(slot_key.lock_key):
            locked = self._load(appointment_id, for_update=True)
            if locked.status != STATUS_QUEUED:
                raise InvalidTransitionError(
                    f"Appointment {appointment_id} is '{locked.status}', not queued."
                )
            self.remove_from_queue(locked)

        return locked

    def promote_after_cancel(self, holder: Appointment) -> PromotionResult:
        """
        Cancel the holder, confirm the queue head and shift the rest down.

        Must run inside a store transaction holding the holder's slot lock.
        """
        slot_key = holder.slot_key

        self.store.set_status(holder, STATUS_CANCELLED)

        queue = self.store.queued_entries(slot_key)
        if not queue:
            logger.info(f"Cancelled holder {holder.id} of {slot_key}; queue empty, slot is open")
            return PromotionResult(cancelled=holder)

        head = queue[0]
        head_position = head.queue_position or 1
        if head_position != 1:
            logger.warning(f"Queue for {slot_key} starts at position {head_position}, expected 1")

        self.store.set_status(head, STATUS_CONFIRMED)
        shifted = self.store.shift_queue_down(slot_key, above_position=head_position)

        logger.info(
            f"Cancelled holder {holder.id} of {slot_key}; promoted appointment {head.id} "
            f"(customer {head.customer_id}), {shifted} still queued"
        )
        return PromotionResult(cancelled=holder, promoted=head, shifted=shifted)

    def remove_from_queue(self, entry: Appointment) -> int:
        """
        Cancel a queued entry and move everyone behind it up one place.

        Must run inside a store transaction holding the entry's slot lock.

        Returns:
            Number of entries moved up
        """
        position = entry.queue_position or 0
        self.store.set_status(entry, STATUS_CANCELLED)
        shifted = self.store.shift_queue_down(entry.slot_key, above_position=position)
        logger.info(f"Cancelled queued appointment {entry.id} at position {position}; {shifted} moved up")
        return shifted

    def _load(self, appointment_id: int, for_update: bool = False) -> Appointment:
        appointment = self.store.get(appointment_id, for_update=for_update)
        if appointment is None:
            raise NotFoundError(f"Appointment {appointment_id} not found.")
        return appointment

    def _publish(self, events: List[BookingEvent]) -> None:
        if self.notification_service is not None and events:
            self.notification_service.publish(events)
