"""
Role-aware status transition rules for appointments.

The rules live in TRANSITION_TABLE, keyed by (role, current status), so a new
role or status is a table change rather than another branch. The validator
only authorizes a request; AppointmentService carries it out.
"""

import logging
from typing import Dict, FrozenSet, Mapping, Optional, Tuple

from core.constants import (
    APPOINTMENT_STATUSES, ROLE_ADMIN, ROLE_AGENT, ROLE_ALIASES, ROLE_CUSTOMER,
    STATUS_CANCELLED, STATUS_COMPLETED, STATUS_CONFIRMED, STATUS_PENDING,
    STATUS_QUEUED, TERMINAL_STATUSES
)
from core.exceptions import InvalidStatusError, InvalidTransitionError, NotAppointmentOwnerError
from models import Appointment

logger = logging.getLogger(__name__)

TransitionKey = Tuple[str, str]


def _reopen_targets(from_status: str) -> FrozenSet[str]:
    return frozenset(status for status in APPOINTMENT_STATUSES if status != from_status)


TRANSITION_TABLE: Dict[TransitionKey, FrozenSet[str]] = {
    (ROLE_CUSTOMER, STATUS_PENDING): frozenset({STATUS_CANCELLED}),
    (ROLE_CUSTOMER, STATUS_CONFIRMED): frozenset({STATUS_CANCELLED}),
    (ROLE_CUSTOMER, STATUS_QUEUED): frozenset({STATUS_CANCELLED}),

    (ROLE_AGENT, STATUS_PENDING): frozenset({STATUS_CONFIRMED, STATUS_CANCELLED}),
    (ROLE_AGENT, STATUS_CONFIRMED): frozenset({STATUS_COMPLETED, STATUS_CANCELLED}),
    (ROLE_AGENT, STATUS_QUEUED): frozenset({STATUS_CANCELLED}),

    (ROLE_ADMIN, STATUS_PENDING): frozenset({STATUS_CONFIRMED, STATUS_CANCELLED}),
    (ROLE_ADMIN, STATUS_CONFIRMED): frozenset({STATUS_COMPLETED, STATUS_CANCELLED}),
    (ROLE_ADMIN, STATUS_QUEUED): frozenset({STATUS_CANCELLED}),
    # Administrative override out of a terminal state
    (ROLE_ADMIN, STATUS_COMPLETED): _reopen_targets(STATUS_COMPLETED),
    (ROLE_ADMIN, STATUS_CANCELLED): _reopen_targets(STATUS_CANCELLED),
}

KNOWN_ROLES = frozenset(role for role, _ in TRANSITION_TABLE)


def normalize_role(role: Optional[str]) -> str:
    """
    Map a caller-supplied role onto a role in the transition table.

    Raises:
        InvalidTransitionError: If the role is unknown
    """
    value = (role or "").strip().lower()
    value = ROLE_ALIASES.get(value, value)
    if value not in KNOWN_ROLES:
        raise InvalidTransitionError(f"Unknown role: {role!r}")
    return value


class StatusTransitionValidator:
    """State machine gate for status change requests."""

    def __init__(self, table: Optional[Mapping[TransitionKey, FrozenSet[str]]] = None):
        self.table = table if table is not None else TRANSITION_TABLE

    def allowed_statuses(self, role: str, from_status: str) -> FrozenSet[str]:
        return self.table.get((normalize_role(role), from_status), frozenset())

    def validate(self, role: str, from_status: str, to_status: str) -> None:
        """
        Check that role may move an appointment from from_status to to_status.

        Raises:
            InvalidStatusError: If to_status is not an appointment status
            InvalidTransitionError: If the transition is not in the table
        """
        if to_status not in APPOINTMENT_STATUSES:
            raise InvalidStatusError(f"Invalid status. Must be one of: {', '.join(APPOINTMENT_STATUSES)}")

        if to_status not in self.allowed_statuses(role, from_status):
            logger.warning(f"Rejected transition {from_status} -> {to_status} for role {role}")
            raise InvalidTransitionError(
                f"Cannot change appointment from '{from_status}' to '{to_status}' as {role}."
            )

    @staticmethod
    def is_override(role: str, from_status: str) -> bool:
        """True when the change reopens or rewrites a terminal appointment."""
        return normalize_role(role) == ROLE_ADMIN and from_status in TERMINAL_STATUSES

    @staticmethod
    def check_access(appointment: Appointment, actor_id: int, role: str) -> None:
        """
        Check that the actor may act on this appointment at all.

        Customers act on their own appointments, agents on appointments
        assigned to them, admins on everything.

        Raises:
            NotAppointmentOwnerError: If the appointment is not the actor's
        """
        normalized = normalize_role(role)
        if normalized == ROLE_CUSTOMER and appointment.customer_id != actor_id:
            raise NotAppointmentOwnerError()
        if normalized == ROLE_AGENT and appointment.agent_id != actor_id:
            raise NotAppointmentOwnerError()
