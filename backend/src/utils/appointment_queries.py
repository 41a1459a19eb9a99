"""
Utility functions for appointment integrity queries.

These scans read committed data only and take no slot locks. They report
slots that break the booking invariants (more than one active holder, or a
queue whose positions are not exactly 1..N) and are used by tests and by
scripts/check_queue_integrity.py.
"""

from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from core.constants import ACTIVE_HOLDER_STATUSES, STATUS_QUEUED
from models import Appointment
from shared_types.slots import SlotKey


@dataclass
class SlotViolation:
    """A slot whose appointments break a booking invariant."""
    slot_key: SlotKey
    kind: str
    detail: str


def count_active_holders(db: Session, slot_key: SlotKey) -> int:
    """Count pending/confirmed appointments on a slot."""
    stmt = select(func.count(Appointment.id)).where(
        Appointment.property_id == slot_key.property_id,
        Appointment.appointment_date == slot_key.date,
        Appointment.appointment_time == slot_key.time,
        Appointment.status.in_(ACTIVE_HOLDER_STATUSES),
    )
    return int(db.execute(stmt).scalar_one())


def find_slot_invariant_violations(db: Session, property_id: Optional[int] = None) -> List[SlotViolation]:
    """
    Scan appointments for slots that break the booking invariants.

    Args:
        db: Database session
        property_id: Limit the scan to one property (default: all)

    Returns:
        One SlotViolation per problem found, empty when everything is consistent
    """
    stmt = select(Appointment)
    if property_id is not None:
        stmt = stmt.where(Appointment.property_id == property_id)
    appointments = db.execute(stmt).scalars().all()

    holders: Dict[SlotKey, List[int]] = defaultdict(list)
    queues: Dict[SlotKey, List[int]] = defaultdict(list)
    violations: List[SlotViolation] = []

    for appointment in appointments:
        slot_key = appointment.slot_key
        if appointment.status in ACTIVE_HOLDER_STATUSES:
            holders[slot_key].append(appointment.id)
        if appointment.status == STATUS_QUEUED:
            if appointment.queue_position is None:
                violations.append(SlotViolation(
                    slot_key, "missing_position", f"queued appointment {appointment.id} has no position"
                ))
            else:
                queues[slot_key].append(appointment.queue_position)
        elif appointment.queue_position is not None:
            violations.append(SlotViolation(
                slot_key, "stray_position",
                f"{appointment.status} appointment {appointment.id} has position {appointment.queue_position}"
            ))

    for slot_key, ids in holders.items():
        if len(ids) > 1:
            violations.append(SlotViolation(
                slot_key, "multiple_holders", f"active holders {sorted(ids)}"
            ))

    for slot_key, positions in queues.items():
        expected = list(range(1, len(positions) + 1))
        if sorted(positions) != expected:
            violations.append(SlotViolation(
                slot_key, "non_contiguous_queue", f"positions {sorted(positions)}, expected {expected}"
            ))

    return sorted(violations, key=lambda v: (v.slot_key, v.kind))
