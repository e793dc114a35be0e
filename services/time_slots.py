from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from services.errors import MeetingValidationError, NoAvailableSlotError

SLOT_MINUTES = 15

# Timezones offered by the scheduling form, (value, label).
TIMEZONES = [
    ("UTC", "UTC (Coordinated Universal Time)"),
    ("Europe/London", "London (GMT/BST)"),
    ("Europe/Berlin", "Berlin (CET/CEST)"),
    ("Europe/Paris", "Paris (CET/CEST)"),
    ("America/New_York", "New York (EST/EDT)"),
    ("America/Chicago", "Chicago (CST/CDT)"),
    ("America/Denver", "Denver (MST/MDT)"),
    ("America/Los_Angeles", "Los Angeles (PST/PDT)"),
    ("Asia/Dubai", "Dubai (GST)"),
    ("Asia/Kolkata", "India (IST)"),
    ("Asia/Singapore", "Singapore (SGT)"),
    ("Asia/Tokyo", "Tokyo (JST)"),
    ("Australia/Sydney", "Sydney (AEST/AEDT)"),
]


def generate_time_slots() -> List[str]:
    slots: List[str] = []
    for hour in range(24):
        for minute in range(0, 60, SLOT_MINUTES):
            slots.append(f"{hour:02d}:{minute:02d}")
    return slots


TIME_SLOTS = generate_time_slots()


def is_supported_timezone(name: Optional[str]) -> bool:
    return any(value == name for value, _ in TIMEZONES)


def get_zone(name: Optional[str]) -> ZoneInfo:
    try:
        return ZoneInfo(str(name or "UTC"))
    except (ZoneInfoNotFoundError, ValueError):
        raise MeetingValidationError(f"Unknown timezone: {name}") from None


def split_slot(value: str) -> Tuple[int, int]:
    hour, minute = str(value).split(":")
    return int(hour), int(minute)


def format_display_time(value: str) -> str:
    """Render "HH:MM" as the 12-hour label shown in the time picker."""
    hour, minute = split_slot(value)
    suffix = "PM" if hour >= 12 else "AM"
    display_hour = hour % 12 or 12
    return f"{display_hour}:{minute:02d} {suffix}"


def _local_now(now: datetime, tz: Optional[str]) -> datetime:
    if tz and now.tzinfo is not None:
        return now.astimezone(get_zone(tz))
    return now


def available_time_slots(
    candidate_date: Optional[date],
    now: datetime,
    *,
    field: str = "start",
    start_date: Optional[date] = None,
    start_time: Optional[str] = None,
    tz: Optional[str] = None,
) -> List[str]:
    """
    Slots that may still be picked for ``candidate_date``.

    Today only keeps slots strictly after the current time of day. For the end
    field on the same calendar day as the start, slots must also sort after
    ``start_time``; zero-padded "HH:MM" strings compare correctly as text.
    """
    if candidate_date is None:
        slots = list(TIME_SLOTS)
    else:
        local_now = _local_now(now, tz)
        if candidate_date != local_now.date():
            slots = list(TIME_SLOTS)
        else:
            current_hour, current_minute = local_now.hour, local_now.minute
            slots = []
            for slot in TIME_SLOTS:
                hour, minute = split_slot(slot)
                if hour > current_hour or (hour == current_hour and minute > current_minute):
                    slots.append(slot)

    if field == "end" and start_date is not None and candidate_date is not None and start_time:
        if start_date == candidate_date:
            slots = [slot for slot in slots if slot > start_time]
    return slots


def first_available_slot(
    candidate_date: Optional[date],
    now: datetime,
    **kwargs,
) -> str:
    slots = available_time_slots(candidate_date, now, **kwargs)
    if not slots:
        raise NoAvailableSlotError()
    return slots[0]


def default_meeting_window(now: datetime) -> Tuple[datetime, datetime]:
    """
    Default start: current time rounded up to the quarter hour, plus another
    quarter hour. Default end: one hour after the start.
    """
    base = now.replace(second=0, microsecond=0)
    rounded = -(-now.minute // SLOT_MINUTES) * SLOT_MINUTES + SLOT_MINUTES
    start = base.replace(minute=0) + timedelta(minutes=rounded)
    return start, start + timedelta(hours=1)
