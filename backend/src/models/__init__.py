# Package initialization
# Import all models to ensure relationships are properly established
from .property import Property
from .appointment import Appointment
from .blocked_slot import BlockedSlot
from .booking_lock import BookingLock
from .notification import Notification

__all__ = [
    "Property",
    "Appointment",
    "BlockedSlot",
    "BookingLock",
    "Notification",
]
