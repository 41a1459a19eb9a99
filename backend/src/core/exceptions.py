"""
Typed errors raised by the booking core.

Every error is recoverable at the caller boundary. Only
ConcurrencyConflictError is safe to retry automatically; the others describe
a policy or user-correctable condition and must be surfaced as-is.
"""

from typing import Optional


class BookingError(Exception):
    """Base exception for booking failures."""

    code = "booking_error"
    retryable = False

    def __init__(self, message: str, code: Optional[str] = None):
        self.message = message
        if code is not None:
            self.code = code
        super().__init__(self.message)


class SlotBlockedError(BookingError):
    """Raised when the requested slot is administratively blocked."""

    code = "slot_blocked"

    def __init__(self, message: str = "This time slot is not available. Please select a different time."):
        super().__init__(message)


class DuplicateActiveBookingError(BookingError):
    """Raised when the customer already holds an open booking for the property."""

    code = "duplicate_active_booking"

    def __init__(self, message: str = "You already have a pending, confirmed, or queued appointment for this property."):
        super().__init__(message)


class InvalidTransitionError(BookingError):
    """Raised when the actor may not move the appointment to the requested status."""

    code = "invalid_transition"


class InvalidStatusError(InvalidTransitionError):
    """Raised when the requested status is not an appointment status at all."""

    code = "invalid_status"


class NotAppointmentOwnerError(InvalidTransitionError):
    """Raised when a customer or agent acts on an appointment that is not theirs."""

    code = "access_denied"

    def __init__(self, message: str = "Access denied."):
        super().__init__(message)


class NotFoundError(BookingError):
    """Raised when a referenced record does not exist."""

    code = "not_found"


class PropertyUnavailableError(NotFoundError):
    """Raised when a property does not exist or is not open for viewings."""

    code = "property_unavailable"

    def __init__(self, message: str = "Property not found or not available."):
        super().__init__(message)


class ConcurrencyConflictError(BookingError):
    """Raised when a slot lock or transaction could not complete. Safe to retry."""

    code = "concurrency_conflict"
    retryable = True

    def __init__(self, message: str = "This slot is being modified by another request, please try again."):
        super().__init__(message)
