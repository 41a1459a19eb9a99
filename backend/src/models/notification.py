"""
Notification model for in-app messages delivered to customers and agents.

Rows are written by the database notification sink after a booking
transaction has committed, never inside it.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Index, Integer, String, Text, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import MAX_STRING_LENGTH
from core.database import Base


class Notification(Base):
    """In-app notification for a user."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    user_id: Mapped[int] = mapped_column(Integer)
    """Recipient (customer or agent) ID."""

    type: Mapped[str] = mapped_column(String(20), default="appointment")
    """Notification category: 'appointment', 'property', 'verification' or 'system'."""

    event_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    """Booking event that produced this notification, e.g. 'booking_promoted'."""

    title: Mapped[str] = mapped_column(String(MAX_STRING_LENGTH))

    message: Mapped[str] = mapped_column(Text)

    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    __table_args__ = (
        Index('idx_notifications_user', 'user_id', 'is_read'),
    )
