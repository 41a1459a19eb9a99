# pyright: reportMissingTypeStubs=false
"""
Appointment API endpoints.

Thin adapter over AppointmentService: parses requests, resolves the actor
from the bearer token and shapes responses. Booking errors raised by the
service are turned into HTTP responses by the handler registered in main.

Handlers are plain functions so FastAPI runs them in its threadpool; slot
locks may block while another request holds them.
"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.responses import (
    AppointmentResponse, AvailableSlotsResponse, BookingResponse, StatusChangeResponse
)
from auth.dependencies import ActorContext, get_current_actor, require_customer_role
from core.database import get_db
from services.appointment_service import AppointmentService
from shared_types.slots import SlotKey

logger = logging.getLogger(__name__)

router = APIRouter()

_appointment_service: Optional[AppointmentService] = None


def get_appointment_service() -> AppointmentService:
    """Shared AppointmentService instance with the default providers and sinks."""
    global _appointment_service
    if _appointment_service is None:
        _appointment_service = AppointmentService()
    return _appointment_service


# ===== Request Models =====

class AppointmentCreateRequest(BaseModel):
    """Request model for booking a viewing."""
    property_id: int = Field(..., gt=0)
    appointment_date: date
    appointment_time: str = Field(..., description="HH:MM or HH:MM:SS")
    notes: Optional[str] = Field(None, max_length=2000)


class StatusUpdateRequest(BaseModel):
    """Request model for changing an appointment's status."""
    status: str

    def normalized(self) -> str:
        return self.status.strip().lower()


# ===== Endpoints =====

@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    request: AppointmentCreateRequest,
    actor: ActorContext = Depends(require_customer_role),
    db: Session = Depends(get_db),
    service: AppointmentService = Depends(get_appointment_service)
):
    """
    Book a viewing slot.

    Becomes the pending holder when the slot is free, otherwise joins the
    slot's queue.
    """
    slot_key = SlotKey.parse(request.property_id, request.appointment_date, request.appointment_time)

    result = service.create_booking(
        db=db,
        customer_id=actor.actor_id,
        property_id=request.property_id,
        slot_key=slot_key,
        notes=request.notes,
    )

    return BookingResponse(
        message=result.message,
        appointment=AppointmentResponse.from_appointment(result.appointment),
        is_queued=result.is_queued,
        queue_position=result.queue_position,
    )


@router.get("/available-slots/{property_id}", response_model=AvailableSlotsResponse)
def get_available_slots(
    property_id: int,
    slot_date: date = Query(..., alias="date"),
    db: Session = Depends(get_db),
    service: AppointmentService = Depends(get_appointment_service)
):
    """List free viewing times for a property on a date. Public."""
    slots = service.get_available_slots(db, property_id, slot_date)
    return AvailableSlotsResponse(**slots.to_dict())


@router.get("/{appointment_id}", response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    actor: ActorContext = Depends(get_current_actor),
    db: Session = Depends(get_db),
    service: AppointmentService = Depends(get_appointment_service)
):
    """Get an appointment the actor owns, is assigned to, or administers."""
    appointment = service.get_appointment(db, appointment_id, actor.actor_id, actor.role)
    return AppointmentResponse.from_appointment(appointment)


@router.put("/{appointment_id}/status", response_model=StatusChangeResponse)
def update_appointment_status(
    appointment_id: int,
    request: StatusUpdateRequest,
    actor: ActorContext = Depends(get_current_actor),
    db: Session = Depends(get_db),
    service: AppointmentService = Depends(get_appointment_service)
):
    """
    Change an appointment's status.

    Cancelling the slot holder promotes the first queued booking, which is
    returned as `promoted`.
    """
    new_status = request.normalized()

    result = service.request_status_change(
        db=db,
        appointment_id=appointment_id,
        actor_id=actor.actor_id,
        role=actor.role,
        new_status=new_status,
    )

    return StatusChangeResponse(
        message=f"Appointment {new_status} successfully",
        appointment=AppointmentResponse.from_appointment(result.appointment),
        previous_status=result.previous_status,
        promoted=AppointmentResponse.from_appointment(result.promoted) if result.promoted else None,
    )
