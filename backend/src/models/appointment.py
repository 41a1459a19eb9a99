"""
Appointment model representing a property viewing booking.

Appointments are the central record of the booking core. Each appointment
claims one slot (property, date, time) either as the active holder
(pending/confirmed) or as a queued requester waiting for the holder to
cancel.
"""

from datetime import date as date_type, datetime, time as time_type
from typing import Optional

from sqlalchemy import (
    CheckConstraint, Date, ForeignKey, Index, Integer, String, Text, Time, TIMESTAMP, text
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import STATUS_PENDING, STATUS_QUEUED
from core.database import Base
from shared_types.slots import SlotKey

# Partial index predicate shared by PostgreSQL and SQLite
_ACTIVE_HOLDER_PREDICATE = text("status IN ('pending', 'confirmed')")


class Appointment(Base):
    """
    Appointment entity representing a customer's request to view a property.

    Invariants enforced by the booking core (and backed by the schema where
    the database can express them):
    - At most one appointment per slot is pending or confirmed.
    - queue_position is set exactly when status is 'queued', and the
      positions of a slot's queued appointments are 1..N.
    - A customer has at most one pending/confirmed/queued appointment per
      property.

    Appointments are never deleted by the booking core; cancellation is a
    status change.
    """

    __tablename__ = "appointments"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the appointment."""

    property_id: Mapped[int] = mapped_column(ForeignKey("properties.id", ondelete="CASCADE"))
    """Reference to the property being viewed."""

    customer_id: Mapped[int] = mapped_column(Integer)
    """ID of the customer who requested the viewing (users are managed externally)."""

    agent_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    """ID of the agent assigned to the property when the booking was made, if any."""

    appointment_date: Mapped[date_type] = mapped_column(Date)
    """Date of the viewing slot."""

    appointment_time: Mapped[time_type] = mapped_column(Time)
    """Start time of the viewing slot."""

    booking_timestamp: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True))
    """
    Microsecond-resolution time the booking request was recorded.

    Informational only: used for audit and display. Who holds the slot is
    decided by which transaction commits first under the slot lock.
    """

    status: Mapped[str] = mapped_column(String(20), default=STATUS_PENDING)
    """Current status. Valid values: 'pending', 'confirmed', 'queued', 'completed', 'cancelled'."""

    queue_position: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    """Position in the slot's waiting queue (1 = next to be promoted). NULL unless queued."""

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    """Optional customer-provided notes."""

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    # Relationships
    listing = relationship("Property", back_populates="appointments")
    """Relationship to the Property being viewed."""

    @property
    def slot_key(self) -> SlotKey:
        """The slot this appointment claims."""
        return SlotKey(
            property_id=self.property_id,
            date=self.appointment_date,
            time=self.appointment_time,
        )

    @property
    def is_queued(self) -> bool:
        return self.status == STATUS_QUEUED

    @property
    def property_title(self) -> str:
        """Title of the viewed property, for notification text."""
        listing = self.listing
        return listing.title if listing is not None else f"property {self.property_id}"

    def to_dict(self) -> dict[str, object]:
        """Serialize for API responses and notification payloads."""
        return {
            "id": self.id,
            "property_id": self.property_id,
            "customer_id": self.customer_id,
            "agent_id": self.agent_id,
            "appointment_date": self.appointment_date.isoformat(),
            "appointment_time": self.appointment_time.strftime("%H:%M:%S"),
            "booking_timestamp": self.booking_timestamp.isoformat() if self.booking_timestamp else None,
            "status": self.status,
            "queue_position": self.queue_position,
            "notes": self.notes,
        }

    def __repr__(self) -> str:
        return (
            f"<Appointment(id={self.id}, property_id={self.property_id}, "
            f"customer_id={self.customer_id}, status='{self.status}', "
            f"queue_position={self.queue_position})>"
        )

    # Table constraints and indexes
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'queued', 'completed', 'cancelled')",
            name="ck_appointments_status",
        ),
        CheckConstraint(
            "(status = 'queued' AND queue_position IS NOT NULL AND queue_position > 0) "
            "OR (status != 'queued' AND queue_position IS NULL)",
            name="ck_appointments_queue_position",
        ),
        # Backstop for the single-active-holder invariant
        Index(
            'uq_appointments_active_slot',
            'property_id', 'appointment_date', 'appointment_time',
            unique=True,
            postgresql_where=_ACTIVE_HOLDER_PREDICATE,
            sqlite_where=_ACTIVE_HOLDER_PREDICATE,
        ),
        Index('idx_appointments_slot', 'property_id', 'appointment_date', 'appointment_time', 'status'),
        Index('idx_appointments_customer_property', 'customer_id', 'property_id', 'status'),
        Index('idx_appointments_agent', 'agent_id'),
        Index('idx_appointments_booking_timestamp', 'booking_timestamp'),
    )
