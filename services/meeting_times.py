from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from services.errors import MeetingValidationError
from services.time_slots import get_zone

DEFAULT_DURATION = timedelta(hours=1)


def parse_time_of_day(value: Optional[str]) -> tuple[int, int]:
    raw = str(value or "").strip()
    parts = raw.split(":")
    if len(parts) != 2:
        raise MeetingValidationError(f"Invalid time of day: {raw!r}")
    try:
        hour = int(parts[0])
        minute = int(parts[1])
    except (TypeError, ValueError):
        raise MeetingValidationError(f"Invalid time of day: {raw!r}") from None
    if hour < 0 or hour > 23 or minute < 0 or minute > 59:
        raise MeetingValidationError(f"Invalid time of day: {raw!r}")
    return hour, minute


def parse_date(value) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = str(value).strip()
    if not raw:
        return None
    try:
        return date.fromisoformat(raw[:10])
    except ValueError:
        raise MeetingValidationError(f"Invalid date: {raw!r}") from None


def combine(on_date: Optional[date], time_of_day: str, tz: str = "UTC") -> datetime:
    """Local wall-clock ``on_date`` + ``time_of_day`` in ``tz`` as an aware UTC datetime."""
    if on_date is None:
        raise MeetingValidationError("A date is required")
    hour, minute = parse_time_of_day(time_of_day)
    local = datetime(on_date.year, on_date.month, on_date.day, hour, minute, 0, tzinfo=get_zone(tz))
    return local.astimezone(timezone.utc)


def to_iso_z(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_instant(value) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        raw = str(value or "").strip()
        if not raw:
            raise MeetingValidationError("A start and end time are required")
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            raise MeetingValidationError(f"Invalid timestamp: {raw!r}") from None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def resolve_meeting_time(on_date, time_of_day: str, tz: str = "UTC") -> str:
    return to_iso_z(combine(parse_date(on_date), time_of_day, tz))


def validate_range(start: datetime, end: datetime) -> None:
    if end <= start:
        raise MeetingValidationError("End time must be after start time")


@dataclass
class MeetingSchedule:
    """
    Start/end picker state of the meeting form.

    Moving the start past the end pushes the end to one hour after the start.
    Editing the end never adjusts anything; ``validate`` catches that on submit.
    """

    start_date: Optional[date] = None
    start_time: str = "09:00"
    end_date: Optional[date] = None
    end_time: str = "10:00"
    tz: str = "UTC"

    @classmethod
    def from_instants(cls, start, end, tz: str = "UTC") -> "MeetingSchedule":
        zone = get_zone(tz)
        start_local = parse_instant(start).astimezone(zone)
        end_local = parse_instant(end).astimezone(zone)
        return cls(
            start_date=start_local.date(),
            start_time=start_local.strftime("%H:%M"),
            end_date=end_local.date(),
            end_time=end_local.strftime("%H:%M"),
            tz=tz,
        )

    def start_instant(self) -> datetime:
        return combine(self.start_date, self.start_time, self.tz)

    def end_instant(self) -> datetime:
        return combine(self.end_date, self.end_time, self.tz)

    def start_iso(self) -> str:
        return to_iso_z(self.start_instant())

    def end_iso(self) -> str:
        return to_iso_z(self.end_instant())

    def set_start(self, on_date: Optional[date] = None, time_of_day: Optional[str] = None) -> None:
        if on_date is not None:
            self.start_date = on_date
        if time_of_day is not None:
            parse_time_of_day(time_of_day)
            self.start_time = time_of_day
        self._advance_end_if_needed()

    def set_end(self, on_date: Optional[date] = None, time_of_day: Optional[str] = None) -> None:
        if on_date is not None:
            self.end_date = on_date
        if time_of_day is not None:
            parse_time_of_day(time_of_day)
            self.end_time = time_of_day

    def validate(self) -> None:
        if self.start_date is None or self.end_date is None:
            raise MeetingValidationError("Please fill in subject, start time and end time")
        validate_range(self.start_instant(), self.end_instant())

    def _advance_end_if_needed(self) -> None:
        if self.start_date is None or self.end_date is None:
            return
        start = self.start_instant()
        if self.end_instant() > start:
            return
        new_end = (start + DEFAULT_DURATION).astimezone(get_zone(self.tz))
        self.end_date = new_end.date()
        self.end_time = new_end.strftime("%H:%M")
