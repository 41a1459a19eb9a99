"""
Shared response models for API endpoints.

This module contains Pydantic response models for the appointment endpoints
and the error body returned for booking failures.
"""

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel

from models import Appointment


class AppointmentResponse(BaseModel):
    """Response model for a viewing appointment."""
    id: int
    property_id: int
    customer_id: int
    agent_id: Optional[int] = None  # Assigned agent at booking time, if the property had one
    appointment_date: date  # Serialized to YYYY-MM-DD in JSON
    appointment_time: str  # HH:MM:SS
    booking_timestamp: Optional[datetime] = None
    status: str
    queue_position: Optional[int] = None  # Only set while queued
    notes: Optional[str] = None

    @classmethod
    def from_appointment(cls, appointment: Appointment) -> "AppointmentResponse":
        return cls(
            id=appointment.id,
            property_id=appointment.property_id,
            customer_id=appointment.customer_id,
            agent_id=appointment.agent_id,
            appointment_date=appointment.appointment_date,
            appointment_time=appointment.appointment_time.strftime("%H:%M:%S"),
            booking_timestamp=appointment.booking_timestamp,
            status=appointment.status,
            queue_position=appointment.queue_position,
            notes=appointment.notes,
        )


class BookingResponse(BaseModel):
    """Response model for a booking request."""
    success: bool = True
    message: str
    appointment: AppointmentResponse
    is_queued: bool
    queue_position: Optional[int] = None


class StatusChangeResponse(BaseModel):
    """Response model for a status change."""
    success: bool = True
    message: str
    appointment: AppointmentResponse
    previous_status: str
    promoted: Optional[AppointmentResponse] = None  # Queued booking that took over the slot


class AvailableSlotsResponse(BaseModel):
    """Response model for the free slots of a property on a date."""
    property_id: int
    date: str
    available_slots: List[str]
    blocked_slots: List[str]
    booked_slots: List[str]


class ErrorResponse(BaseModel):
    """Body returned for booking failures."""
    success: bool = False
    error: str
    code: str
    retryable: bool = False
