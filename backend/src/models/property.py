"""
Property model holding the booking-relevant view of a listing.

Listing details (photos, pricing, search fields) are managed by the property
catalogue; the booking core only needs to know whether a property can take
viewings and which agent is assigned to it.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Integer, String, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import MAX_STRING_LENGTH, PROPERTY_STATUS_AVAILABLE
from core.database import Base


class Property(Base):
    """Property entity that appointments and blocked slots refer to."""

    __tablename__ = "properties"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the property."""

    title: Mapped[str] = mapped_column(String(MAX_STRING_LENGTH))
    """Display title, used in notification text."""

    status: Mapped[str] = mapped_column(String(20), default=PROPERTY_STATUS_AVAILABLE)
    """Listing status. Valid values: 'available', 'pending', 'sold', 'rented'."""

    assigned_agent_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    """Agent responsible for viewings of this property, copied onto new appointments."""

    is_archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    """Archived properties do not accept bookings."""

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    # Relationships
    appointments = relationship("Appointment", back_populates="listing")
    blocked_slots = relationship("BlockedSlot", back_populates="listing", cascade="all, delete-orphan")

    @property
    def is_bookable(self) -> bool:
        """True when the property accepts new viewing requests."""
        return self.status == PROPERTY_STATUS_AVAILABLE and not self.is_archived
