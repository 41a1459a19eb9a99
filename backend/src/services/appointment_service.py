"""
Appointment service: the booking core's exposed operations.

This module ties the booking components together: the duplicate guard,
slot state resolver and queue assigner for new bookings, the status
transition validator and promotion engine for status changes, plus the
read-only lookups used by the API layer. Every mutating operation runs in a
single BookingStore transaction and publishes its events after the commit.
"""

import logging
from dataclasses import dataclass
from datetime import date as date_type
from typing import List, Optional

from sqlalchemy.orm import Session

from core.config import SLOT_LOCK_TIMEOUT_MS
from core.constants import (
    ACTIVE_HOLDER_STATUSES, ROLE_CUSTOMER, STATUS_CANCELLED, STATUS_PENDING,
    STATUS_QUEUED, TERMINAL_STATUSES
)
from core.exceptions import InvalidTransitionError, NotFoundError, SlotBlockedError
from models import Appointment
from services.availability_service import (
    AvailabilityService, BlockedSlotProvider, PropertyAvailabilityProvider
)
from services.booking_store import BookingStore
from services.duplicate_guard import DuplicateGuard
from services.notification_service import BookingEvent, NotificationService, collect
from services.promotion_engine import PromotionEngine
from services.slot_resolver import QueueAssigner, SlotStateResolver
from services.status_transition import StatusTransitionValidator, normalize_role
from shared_types.slots import AvailableSlots, SlotKey, customer_property_lock_key
from utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)

BOOKING_SUBMITTED_MESSAGE = "Appointment request submitted successfully."
BOOKING_QUEUED_MESSAGE = (
    "This slot is in high demand! You've been added to the queue at position {position}. "
    "You'll be notified immediately if the slot becomes available."
)


@dataclass
class BookingResult:
    """Result of a booking request."""
    appointment: Appointment
    is_queued: bool
    queue_position: Optional[int]
    message: str


@dataclass
class StatusChangeResult:
    """Result of a status change; promoted is set when a queued booking took the slot."""
    appointment: Appointment
    previous_status: str
    promoted: Optional[Appointment] = None


class AppointmentService:
    """
    Service class for viewing appointment operations.

    Holds the external providers (blocked slots, property availability,
    notification sinks) and works on whatever session the caller passes in.
    A single instance can be shared between requests: it keeps no booking
    state of its own.
    """

    def __init__(
        self,
        blocked_slots: Optional[BlockedSlotProvider] = None,
        properties: Optional[PropertyAvailabilityProvider] = None,
        notification_service: Optional[NotificationService] = None,
        validator: Optional[StatusTransitionValidator] = None,
        lock_timeout_ms: int = SLOT_LOCK_TIMEOUT_MS,
        slot_times: Optional[List[str]] = None
    ):
        self.blocked_slots = blocked_slots or BlockedSlotProvider()
        self.properties = properties or PropertyAvailabilityProvider()
        self.notification_service = notification_service or NotificationService()
        self.validator = validator or StatusTransitionValidator()
        self.lock_timeout_ms = lock_timeout_ms
        self.availability = AvailabilityService(
            blocked_slots=self.blocked_slots,
            properties=self.properties,
            slot_times=slot_times,
        )

    def _store(self, db: Session) -> BookingStore:
        return BookingStore(db, lock_timeout_ms=self.lock_timeout_ms)

    def create_booking(
        self,
        db: Session,
        customer_id: int,
        property_id: int,
        slot_key: SlotKey,
        notes: Optional[str] = None
    ) -> BookingResult:
        """
        Book a viewing slot, or join its queue when the slot is already held.

        The duplicate check, slot resolution, queue position and insert all
        run in one transaction holding the slot lock and the customer/property
        lock, so two racing requests cannot both become the holder and one
        customer cannot slip in two bookings for the same property.

        Args:
            db: Database session
            customer_id: Requesting customer
            property_id: Property to view
            slot_key: Requested slot; must belong to property_id
            notes: Optional notes from the customer

        Returns:
            BookingResult with the new appointment and its queue position

        Raises:
            PropertyUnavailableError: If the property cannot take bookings
            DuplicateActiveBookingError: If the customer already has an open
                booking for the property
            SlotBlockedError: If the slot is blocked
            ConcurrencyConflictError: If the transaction could not complete
        """
        if slot_key.property_id != property_id:
            raise ValueError(f"Slot {slot_key} does not belong to property {property_id}")

        store = self._store(db)
        with store.read():
            listing = self.properties.get_bookable_property(db, property_id)
            agent_id = listing.assigned_agent_id
            property_title = listing.title

        events: List[BookingEvent] = []
        with store.transaction(slot_key.lock_key, customer_property_lock_key(customer_id, property_id)):
            DuplicateGuard(store).check(customer_id, property_id)

            resolution = SlotStateResolver(store, self.blocked_slots).resolve(slot_key)
            if resolution.is_blocked:
                logger.warning(f"Customer {customer_id} requested blocked slot {slot_key}")
                raise SlotBlockedError()

            appointment = Appointment(
                property_id=property_id,
                customer_id=customer_id,
                agent_id=agent_id,
                appointment_date=slot_key.date,
                appointment_time=slot_key.time,
                booking_timestamp=utc_now(),
                notes=notes,
            )
            if resolution.is_open:
                appointment.status = STATUS_PENDING
                appointment.queue_position = None
            else:
                appointment.status = STATUS_QUEUED
                appointment.queue_position = QueueAssigner(store).next_position(slot_key)
            store.add(appointment)

            if appointment.is_queued:
                events.append(NotificationService.booking_queued(appointment))
            else:
                events.append(NotificationService.booking_created(appointment, property_title))

        if appointment.is_queued:
            logger.info(
                f"Queued appointment {appointment.id} for customer {customer_id} on {slot_key} "
                f"at position {appointment.queue_position} (holder {resolution.holder_id})"
            )
            message = BOOKING_QUEUED_MESSAGE.format(position=appointment.queue_position)
        else:
            logger.info(f"Created appointment {appointment.id} for customer {customer_id} on {slot_key}")
            message = BOOKING_SUBMITTED_MESSAGE

        self.notification_service.publish(events)

        return BookingResult(
            appointment=appointment,
            is_queued=appointment.is_queued,
            queue_position=appointment.queue_position,
            message=message,
        )

    def request_status_change(
        self,
        db: Session,
        appointment_id: int,
        actor_id: int,
        role: str,
        new_status: str
    ) -> StatusChangeResult:
        """
        Change an appointment's status on behalf of an actor.

        Cancelling the active holder promotes the head of the slot's queue;
        cancelling a queued entry closes the gap it leaves; an admin reopening
        a terminal appointment is held to the same slot and duplicate rules
        as a new booking. Everything happens in one transaction.

        Args:
            db: Database session
            appointment_id: Appointment to change
            actor_id: ID of the acting user
            role: Actor role (customer, agent/staff, admin)
            new_status: Requested status

        Returns:
            StatusChangeResult with the updated appointment and, when the
            cancellation freed the slot for the queue, the promoted one

        Raises:
            NotFoundError: If the appointment does not exist
            NotAppointmentOwnerError: If the appointment is not the actor's
            InvalidTransitionError: If the role may not make this change
            DuplicateActiveBookingError: If a reopen would give the customer
                a second open booking for the property
            ConcurrencyConflictError: If the transaction could not complete
        """
        role = normalize_role(role)
        store = self._store(db)

        with store.read():
            appointment = store.get(appointment_id)
            if appointment is None:
                raise NotFoundError(f"Appointment {appointment_id} not found.")
            lock_keys = (
                appointment.slot_key.lock_key,
                customer_property_lock_key(appointment.customer_id, appointment.property_id),
            )

        engine = PromotionEngine(store)
        promoted: Optional[Appointment] = None
        events: List[BookingEvent] = []
        with store.transaction(*lock_keys):
            locked = store.get(appointment_id, for_update=True)
            if locked is None:
                raise NotFoundError(f"Appointment {appointment_id} not found.")

            self.validator.check_access(locked, actor_id, role)
            previous_status = locked.status
            if new_status == previous_status:
                raise InvalidTransitionError(f"Appointment is already '{previous_status}'.")
            self.validator.validate(role, previous_status, new_status)

            property_title = locked.property_title

            if new_status == STATUS_CANCELLED and previous_status in ACTIVE_HOLDER_STATUSES:
                promoted = engine.promote_after_cancel(locked).promoted
            elif new_status == STATUS_CANCELLED and previous_status == STATUS_QUEUED:
                engine.remove_from_queue(locked)
            elif self.validator.is_override(role, previous_status):
                self._reopen(store, locked, new_status)
            else:
                store.set_status(locked, new_status)

            events.append(NotificationService.status_changed(
                locked, property_title, previous_status, actor_id, role
            ))
            if new_status == STATUS_CANCELLED and role == ROLE_CUSTOMER:
                collect(events, NotificationService.customer_cancelled(locked, property_title))
            if promoted is not None:
                events.append(NotificationService.booking_promoted(promoted, property_title, locked.id))

        logger.info(
            f"Appointment {appointment_id}: {previous_status} -> {new_status} by {role} {actor_id}"
            + (f"; promoted appointment {promoted.id}" if promoted is not None else "")
        )
        self.notification_service.publish(events)

        return StatusChangeResult(appointment=locked, previous_status=previous_status, promoted=promoted)

    def _reopen(self, store: BookingStore, appointment: Appointment, new_status: str) -> None:
        """Apply an admin override out of a terminal status."""
        slot_key = appointment.slot_key

        if new_status in TERMINAL_STATUSES:
            store.set_status(appointment, new_status)
            return

        DuplicateGuard(store).check(
            appointment.customer_id, appointment.property_id, exclude_appointment_id=appointment.id
        )

        if new_status == STATUS_QUEUED:
            position = QueueAssigner(store).next_position(slot_key)
            store.set_status(appointment, STATUS_QUEUED, queue_position=position)
            return

        holder = store.find_active_holder(slot_key, exclude_id=appointment.id)
        if holder is not None:
            logger.warning(
                f"Cannot reopen appointment {appointment.id}: {slot_key} is held by appointment {holder.id}"
            )
            raise InvalidTransitionError(
                f"Slot is already held by appointment {holder.id}; cancel it first or reopen as queued."
            )
        store.set_status(appointment, new_status)

    # Read-only operations

    def get_available_slots(self, db: Session, property_id: int, slot_date: date_type) -> AvailableSlots:
        """List free times for a property on a date (see AvailabilityService)."""
        with self._store(db).read():
            return self.availability.get_available_slots(db, property_id, slot_date)

    def get_appointment(self, db: Session, appointment_id: int, actor_id: int, role: str) -> Appointment:
        """
        Load an appointment the actor is allowed to see.

        Raises:
            NotFoundError: If the appointment does not exist
            NotAppointmentOwnerError: If the appointment is not the actor's
        """
        store = self._store(db)
        with store.read():
            appointment = store.get(appointment_id)
            if appointment is None:
                raise NotFoundError(f"Appointment {appointment_id} not found.")
            self.validator.check_access(appointment, actor_id, role)
        return appointment

    def get_slot_queue(self, db: Session, slot_key: SlotKey) -> List[Appointment]:
        """Queued appointments for a slot, in queue order."""
        store = self._store(db)
        with store.read():
            return store.queued_entries(slot_key)
