"""Shared validation utilities"""

from typing import Optional

from ..domain.calendar_sync.slots import parse_slot_date, parse_slot_time


def validate_slot_date(slot_date: Optional[str]) -> str:
    """
    Validate a DD_MM_YYYY slot date token.

    Raises:
        ValueError: If the token is not a real calendar date
    """
    if not slot_date:
        raise ValueError("Slot date is required")
    try:
        parse_slot_date(slot_date)
    except ValueError as e:
        raise ValueError("Slot date must look like DD_MM_YYYY") from e
    return slot_date.strip()


def validate_slot_time(slot_time: Optional[str]) -> str:
    """
    Validate a slot time token ("10:30 AM" or "14:30").

    Raises:
        ValueError: If the token cannot be read as a time of day
    """
    if not slot_time:
        raise ValueError("Slot time is required")
    try:
        parse_slot_time(slot_time)
    except ValueError as e:
        raise ValueError("Slot time must look like '10:30 AM' or '14:30'") from e
    return slot_time.strip()
