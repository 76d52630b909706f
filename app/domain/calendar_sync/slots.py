"""Slot token parsing: "19_10_2026" + "10:30 AM" -> aware UTC datetime"""

import re
from datetime import date, datetime, time, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ...config import CLINIC_TIMEZONE

_TIME_12H = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*([AaPp][Mm])\s*$")
_TIME_24H = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


def _clinic_zone(tz_name: Optional[str]) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name or CLINIC_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def parse_slot_date(slot_date: str) -> date:
    """Parse a DD_MM_YYYY date token"""
    parts = (slot_date or "").strip().split("_")
    if len(parts) != 3:
        raise ValueError(f"Invalid slot date: {slot_date!r}")
    day, month, year = (int(p) for p in parts)
    return date(year, month, day)


def parse_slot_time(slot_time: str) -> time:
    """Parse "10:30 AM" (12h) or "14:30" (24h)"""
    value = slot_time or ""
    m = _TIME_12H.match(value)
    if m:
        hour, minute, period = int(m.group(1)), int(m.group(2)), m.group(3).upper()
        if not 1 <= hour <= 12:
            raise ValueError(f"Invalid slot time: {slot_time!r}")
        if period == "PM" and hour != 12:
            hour += 12
        if period == "AM" and hour == 12:
            hour = 0
        return time(hour, minute)

    m = _TIME_24H.match(value)
    if m:
        return time(int(m.group(1)), int(m.group(2)))

    raise ValueError(f"Invalid slot time: {slot_time!r}")


def scheduled_instant(slot_date: str, slot_time: str, tz_name: Optional[str] = None) -> datetime:
    """Combine slot tokens into an aware UTC datetime"""
    local = datetime.combine(parse_slot_date(slot_date), parse_slot_time(slot_time))
    return local.replace(tzinfo=_clinic_zone(tz_name)).astimezone(timezone.utc)


def try_scheduled_instant(
    slot_date: Optional[str], slot_time: Optional[str], tz_name: Optional[str] = None
) -> Optional[datetime]:
    if not slot_date or not slot_time:
        return None
    try:
        return scheduled_instant(slot_date, slot_time, tz_name)
    except ValueError:
        return None


def parse_google_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp or an all-day YYYY-MM-DD date from Google"""
    if not value or not isinstance(value, str):
        return None
    raw = value.strip()
    try:
        if len(raw) == 10:
            return datetime.combine(date.fromisoformat(raw), time(0, 0), tzinfo=timezone.utc)
        if raw.endswith("Z") or raw.endswith("z"):
            raw = raw[:-1] + "+00:00"
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
