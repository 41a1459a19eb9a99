# pyright: reportUnknownMemberType=false
"""
Booking notifications and audit events.

Events are built while the booking transaction still holds its locks (so
they see the committed-to-be state) and delivered only after it commits.
Delivery is best-effort: a failing sink is logged and never turns a
committed booking into an error.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from core.constants import STATUS_CANCELLED, STATUS_COMPLETED, STATUS_CONFIRMED
from core.database import SessionLocal
from models import Appointment, Notification
from utils.datetime_utils import format_slot_date, format_slot_time

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("audit")

EVENT_BOOKING_CREATED = "booking_created"
EVENT_BOOKING_QUEUED = "booking_queued"
EVENT_BOOKING_PROMOTED = "booking_promoted"
EVENT_BOOKING_CONFIRMED = "booking_confirmed"
EVENT_BOOKING_COMPLETED = "booking_completed"
EVENT_BOOKING_CANCELLED = "booking_cancelled"
EVENT_STATUS_CHANGED = "status_changed"

_STATUS_EVENT_TYPES = {
    STATUS_CONFIRMED: EVENT_BOOKING_CONFIRMED,
    STATUS_COMPLETED: EVENT_BOOKING_COMPLETED,
    STATUS_CANCELLED: EVENT_BOOKING_CANCELLED,
}


@dataclass
class BookingEvent:
    """
    A booking event awaiting delivery.

    Events with a recipient are sent to the notification sink; audited
    events are also recorded by the audit sink.
    """
    event_type: str
    payload: Dict[str, Any] = field(default_factory=dict)
    recipient_id: Optional[int] = None
    title: Optional[str] = None
    message: Optional[str] = None
    audited: bool = True

    @property
    def notifies(self) -> bool:
        return self.recipient_id is not None and self.title is not None

    def notification_payload(self) -> Dict[str, Any]:
        return {
            "recipient_id": self.recipient_id,
            "title": self.title,
            "message": self.message,
            **self.payload,
        }


class NotificationSink:
    """Interface for delivering notifications: emit(event_type, payload)."""

    def emit(self, event_type: str, payload: Dict[str, Any]) -> None:
        raise NotImplementedError


class AuditSink:
    """Interface for recording audit events: record(event_type, payload)."""

    def record(self, event_type: str, payload: Dict[str, Any]) -> None:
        raise NotImplementedError


class DatabaseNotificationSink(NotificationSink):
    """Stores notifications as in-app messages, in a session of its own."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    def emit(self, event_type: str, payload: Dict[str, Any]) -> None:
        db = self.session_factory()
        try:
            db.add(Notification(
                user_id=payload["recipient_id"],
                type="appointment",
                event_type=event_type,
                title=payload["title"],
                message=payload.get("message") or "",
            ))
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


class LoggingAuditSink(AuditSink):
    """Writes one JSON line per event to the 'audit' logger."""

    def record(self, event_type: str, payload: Dict[str, Any]) -> None:
        audit_logger.info(json.dumps({"event_type": event_type, **payload}, default=str))


class NotificationService:
    """Builds booking events and delivers them to the configured sinks."""

    def __init__(
        self,
        notifications: Optional[NotificationSink] = None,
        audit: Optional[AuditSink] = None
    ):
        self.notifications = notifications if notifications is not None else DatabaseNotificationSink()
        self.audit = audit if audit is not None else LoggingAuditSink()

    def publish(self, events: Iterable[BookingEvent]) -> int:
        """
        Deliver events after the booking transaction has committed.

        Each sink call is isolated: a failure is logged and delivery moves on
        to the next event.

        Returns:
            Number of notifications delivered
        """
        delivered = 0
        for event in events:
            if event.notifies:
                try:
                    self.notifications.emit(event.event_type, event.notification_payload())
                    delivered += 1
                except Exception as e:
                    logger.exception(
                        f"Failed to deliver {event.event_type} notification to user {event.recipient_id}: {e}"
                    )
            if not event.audited:
                continue
            try:
                self.audit.record(event.event_type, event.payload)
            except Exception as e:
                logger.exception(f"Failed to record audit event {event.event_type}: {e}")
        return delivered

    # Event builders

    @staticmethod
    def _payload(appointment: Appointment, **extra: Any) -> Dict[str, Any]:
        return {"appointment": appointment.to_dict(), **extra}

    @staticmethod
    def _when(appointment: Appointment) -> str:
        return f"{format_slot_date(appointment.appointment_date)} at {format_slot_time(appointment.appointment_time)}"

    @staticmethod
    def booking_created(appointment: Appointment, property_title: str) -> BookingEvent:
        """New active booking; tells the assigned agent, if there is one."""
        return BookingEvent(
            event_type=EVENT_BOOKING_CREATED,
            payload=NotificationService._payload(appointment),
            recipient_id=appointment.agent_id,
            title="New Appointment Request" if appointment.agent_id is not None else None,
            message=f"New viewing request for {property_title} on {NotificationService._when(appointment)}.",
        )

    @staticmethod
    def booking_queued(appointment: Appointment) -> BookingEvent:
        """Queued booking; audit only, the customer learns the position from the response."""
        return BookingEvent(
            event_type=EVENT_BOOKING_QUEUED,
            payload=NotificationService._payload(appointment, queue_position=appointment.queue_position),
        )

    @staticmethod
    def booking_promoted(appointment: Appointment, property_title: str, cancelled_id: int) -> BookingEvent:
        """Queue head promoted after the holder cancelled."""
        return BookingEvent(
            event_type=EVENT_BOOKING_PROMOTED,
            payload=NotificationService._payload(appointment, cancelled_appointment_id=cancelled_id),
            recipient_id=appointment.customer_id,
            title="🎉 Booking Confirmed!",
            message=(
                f"Great news! Your queued booking for {property_title} on "
                f"{NotificationService._when(appointment)} has been promoted to confirmed. "
                f"The slot is now yours!"
            ),
        )

    @staticmethod
    def status_changed(
        appointment: Appointment,
        property_title: str,
        previous_status: str,
        actor_id: int,
        role: str
    ) -> BookingEvent:
        """Status change requested by an actor; tells the customer."""
        new_status = appointment.status
        if new_status == STATUS_CONFIRMED:
            title = "✅ Appointment Confirmed"
            message = (
                f"Your viewing appointment for {property_title} on "
                f"{format_slot_date(appointment.appointment_date)} has been confirmed!"
            )
        elif new_status == STATUS_COMPLETED:
            title = "✓ Viewing Completed"
            message = f"Your viewing of {property_title} has been marked as completed. We hope it went well!"
        elif new_status == STATUS_CANCELLED:
            title = "❌ Appointment Cancelled"
            message = f"Your appointment for {property_title} has been cancelled."
        else:
            title = "Appointment Update"
            message = f"Your appointment for {property_title} has been {new_status}."

        return BookingEvent(
            event_type=_STATUS_EVENT_TYPES.get(new_status, EVENT_STATUS_CHANGED),
            payload=NotificationService._payload(
                appointment, previous_status=previous_status, actor_id=actor_id, role=role
            ),
            recipient_id=appointment.customer_id,
            title=title,
            message=message,
        )

    @staticmethod
    def customer_cancelled(appointment: Appointment, property_title: str) -> Optional[BookingEvent]:
        """Customer cancelled their own booking; tells the agent."""
        if appointment.agent_id is None:
            return None
        return BookingEvent(
            event_type=EVENT_BOOKING_CANCELLED,
            payload=NotificationService._payload(appointment, cancelled_by="customer"),
            recipient_id=appointment.agent_id,
            title="Appointment Cancelled",
            message=f"Customer cancelled appointment for {property_title}.",
            audited=False,
        )


def collect(events: List[BookingEvent], event: Optional[BookingEvent]) -> None:
    """Append an event if one was built."""
    if event is not None:
        events.append(event)
