"""
Shared type definitions for the booking backend.

This module contains dataclasses and types that are used across multiple services.
"""

from shared_types.slots import AvailableSlots, SlotKey, SlotResolution, SlotState

__all__ = ["AvailableSlots", "SlotKey", "SlotResolution", "SlotState"]
