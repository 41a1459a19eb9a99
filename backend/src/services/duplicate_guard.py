import logging
from typing import Optional

from core.exceptions import DuplicateActiveBookingError
from services.booking_store import BookingStore

logger = logging.getLogger(__name__)


class DuplicateGuard:
    """
    Rejects a booking when the customer already has an open one for the property.

    Open means pending, confirmed or queued, on any slot of the property.
    The check is only race-free inside a store transaction holding the
    customer/property lock, so the insert that follows cannot be beaten by a
    second request from the same customer.
    """

    def __init__(self, store: BookingStore):
        self.store = store

    def check(self, customer_id: int, property_id: int, exclude_appointment_id: Optional[int] = None) -> None:
        if not self.store.in_transaction:
            raise RuntimeError("Duplicate check must run under the customer/property lock")

        existing = self.store.open_bookings_for_customer(
            customer_id, property_id, exclude_id=exclude_appointment_id
        )
        if existing:
            logger.warning(
                f"Customer {customer_id} already has open appointment {existing[0].id} "
                f"({existing[0].status}) for property {property_id}"
            )
            raise DuplicateActiveBookingError()
