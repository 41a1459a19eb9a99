"""
Blocked slot model representing times an agent has marked unavailable.

Blocked slots are owned by the agent tooling; the booking core only reads
them. A blocked slot rejects new bookings outright instead of queueing them.
"""

from datetime import date as date_type, datetime, time as time_type
from typing import Optional

from sqlalchemy import Date, ForeignKey, Index, Integer, String, Time, TIMESTAMP, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import MAX_STRING_LENGTH
from core.database import Base


class BlockedSlot(Base):
    """A (property, date, time) marked unavailable for viewings."""

    __tablename__ = "blocked_slots"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    property_id: Mapped[int] = mapped_column(ForeignKey("properties.id", ondelete="CASCADE"))

    blocked_date: Mapped[date_type] = mapped_column(Date)

    blocked_time: Mapped[time_type] = mapped_column(Time)

    reason: Mapped[Optional[str]] = mapped_column(String(MAX_STRING_LENGTH), nullable=True)
    """Optional reason shown to agents."""

    blocked_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    """ID of the agent or admin who blocked the slot."""

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    listing = relationship("Property", back_populates="blocked_slots")

    __table_args__ = (
        UniqueConstraint('property_id', 'blocked_date', 'blocked_time', name='uq_blocked_slots_slot'),
        Index('idx_blocked_slots_property_date', 'property_id', 'blocked_date'),
    )
