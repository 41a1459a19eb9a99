"""
Datetime utilities for slot dates, slot times and booking timestamps.

Slot dates and times are naive calendar values ("2024-01-15", "10:00:00");
booking timestamps are timezone-aware UTC datetimes with microsecond
resolution.
"""

import logging
from datetime import date, datetime, time, timezone
from typing import Union

logger = logging.getLogger(__name__)

SLOT_DATE_FORMAT = "%Y-%m-%d"
SLOT_TIME_FORMAT = "%H:%M:%S"


def utc_now() -> datetime:
    """
    Get the current UTC datetime.

    Returns:
        Timezone-aware datetime with microsecond resolution
    """
    return datetime.now(timezone.utc)


def parse_slot_date(value: Union[str, date]) -> date:
    """
    Parse a slot date given as a date or an ISO "YYYY-MM-DD" string.

    Raises:
        ValueError: If the string is not a valid date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(value.strip(), SLOT_DATE_FORMAT).date()


def parse_slot_time(value: Union[str, time]) -> time:
    """
    Parse a slot time given as a time or an "HH:MM[:SS]" string.

    Seconds default to zero; sub-second parts are dropped since slots are
    whole-second values.

    Raises:
        ValueError: If the string is not a valid time
    """
    if isinstance(value, time):
        return value.replace(microsecond=0)
    text = value.strip()
    for fmt in (SLOT_TIME_FORMAT, "%H:%M"):
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    raise ValueError(f"Invalid slot time: {value!r}")


def format_slot_date(value: date) -> str:
    return value.strftime(SLOT_DATE_FORMAT)


def format_slot_time(value: time) -> str:
    return value.strftime(SLOT_TIME_FORMAT)
