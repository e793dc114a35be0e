from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from services.errors import MeetingValidationError
from services.meeting_times import MeetingSchedule, parse_date, parse_instant, validate_range
from services.time_slots import is_supported_timezone
from shared.config import get_default_timezone

MEETING_STATUSES = {"scheduled", "cancelled"}


def _optional_str(payload: Dict[str, Any], *fields: str) -> Optional[str]:
    for field in fields:
        value = payload.get(field)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def normalize_status(value: Any) -> str:
    normalized = str(value or "scheduled").strip().lower()
    if normalized not in MEETING_STATUSES:
        raise MeetingValidationError("Invalid meeting status")
    return normalized


def normalize_timezone(value: Any) -> str:
    tz = str(value or get_default_timezone()).strip()
    if not is_supported_timezone(tz):
        raise MeetingValidationError(f"Unsupported timezone: {tz}")
    return tz


def resolve_meeting_window(payload: Dict[str, Any]) -> tuple[datetime, datetime]:
    """
    Accept either absolute instants (start_time/end_time) or the form shape
    (startDate/startTime/endDate/endTime/timezone) and return aware UTC datetimes.
    """
    start_raw = _optional_str(payload, "start_time", "startDateTime")
    end_raw = _optional_str(payload, "end_time", "endDateTime")
    if start_raw or end_raw:
        start = parse_instant(start_raw)
        end = parse_instant(end_raw)
    else:
        schedule = MeetingSchedule(
            start_date=parse_date(payload.get("startDate")),
            start_time=_optional_str(payload, "startTime") or "09:00",
            end_date=parse_date(payload.get("endDate")),
            end_time=_optional_str(payload, "endTime") or "10:00",
            tz=normalize_timezone(payload.get("timezone")),
        )
        schedule.validate()
        start = schedule.start_instant()
        end = schedule.end_instant()
    validate_range(start, end)
    return start, end


def validate_meeting_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise MeetingValidationError("Invalid JSON payload")

    subject = _optional_str(payload, "subject")
    if not subject:
        raise MeetingValidationError("Please fill in all required fields")

    start, end = resolve_meeting_window(payload)
    return {
        "subject": subject,
        "description": _optional_str(payload, "description"),
        "start_time": start,
        "end_time": end,
        "join_url": _optional_str(payload, "join_url", "joinUrl"),
        "lead_id": _optional_str(payload, "lead_id", "leadId"),
        "contact_id": _optional_str(payload, "contact_id", "contactId"),
        "status": normalize_status(payload.get("status")),
    }
