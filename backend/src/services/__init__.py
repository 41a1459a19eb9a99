"""
Services package for the booking core.

This package contains the service classes that implement slot booking,
queue promotion and status changes, plus the providers and sinks they talk
to.
"""

from .appointment_service import AppointmentService, BookingResult, StatusChangeResult
from .availability_service import AvailabilityService, BlockedSlotProvider, PropertyAvailabilityProvider
from .booking_store import BookingStore
from .notification_service import NotificationService
from .promotion_engine import PromotionEngine, PromotionResult
from .status_transition import StatusTransitionValidator

__all__ = [
    "AppointmentService",
    "BookingResult",
    "StatusChangeResult",
    "AvailabilityService",
    "BlockedSlotProvider",
    "PropertyAvailabilityProvider",
    "BookingStore",
    "NotificationService",
    "PromotionEngine",
    "PromotionResult",
    "StatusTransitionValidator",
]
