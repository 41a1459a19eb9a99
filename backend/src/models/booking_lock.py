"""
Booking lock model used to serialize writers on a slot.

One row exists per lock key (a slot, or a customer/property pair). Writers
upsert the row and then lock it with SELECT ... FOR UPDATE, so two
transactions touching the same key run one after the other even when
neither has inserted an appointment yet.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import MAX_LOCK_KEY_LENGTH
from core.database import Base


class BookingLock(Base):
    """A lockable row keyed by a slot or customer/property key."""

    __tablename__ = "booking_locks"

    lock_key: Mapped[str] = mapped_column(String(MAX_LOCK_KEY_LENGTH), primary_key=True)
    """Key such as 'slot:5:2024-01-15:10:00:00' or 'customer-property:12:5'."""

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
