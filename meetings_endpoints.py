from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import azure.functions as func

from crm_shared import (
    error_response,
    get_limit,
    json_response,
    method_not_allowed,
    parse_json_body,
    require_actor,
)
from function_app import app
from repository.crm_repo import fetch_attendee_options
from repository.meetings_repo import (
    create_meeting,
    delete_meeting,
    get_meeting,
    list_meetings,
    meeting_to_dict,
    update_meeting,
)
from schemas.meetings_schema import normalize_timezone, validate_meeting_payload
from services.errors import CRMError, NoAvailableSlotError, NotFound
from services.meeting_times import parse_date, parse_time_of_day
from services.time_slots import (
    TIMEZONES,
    available_time_slots,
    default_meeting_window,
    first_available_slot,
    format_display_time,
    get_zone,
)
from shared.db import SessionLocal
from utils.cors import build_cors_headers

logger = logging.getLogger(__name__)


def _slot_options(slots: List[str]) -> List[Dict[str, str]]:
    return [{"value": slot, "label": format_display_time(slot)} for slot in slots]


def _slot_param(value: Optional[str]) -> Optional[str]:
    """Zero-padded "HH:MM" so it compares correctly against the slot grid."""
    if not value:
        return None
    hour, minute = parse_time_of_day(value)
    return f"{hour:02d}:{minute:02d}"


def handle_meetings(req: func.HttpRequest) -> func.HttpResponse:
    cors = build_cors_headers(req, ["GET", "POST", "OPTIONS"])
    if req.method == "OPTIONS":
        return func.HttpResponse("", status_code=204, headers=cors)
    if req.method not in {"GET", "POST"}:
        return method_not_allowed(cors)

    db = SessionLocal()
    try:
        actor = require_actor(req)
        if req.method == "GET":
            search = req.params.get("search") or req.params.get("q")
            now = datetime.now(timezone.utc)
            rows = list_meetings(db, search=search, limit=get_limit(req))
            return json_response({"items": [meeting_to_dict(row, now) for row in rows]}, status_code=200, cors=cors)

        data = validate_meeting_payload(parse_json_body(req))
        meeting = create_meeting(db, data, actor.user_id)
        db.commit()
        logger.info("Meeting %s created by %s", meeting.id, actor.user_id)
        return json_response(
            {"item": meeting_to_dict(meeting), "message": "Meeting created successfully"},
            status_code=201,
            cors=cors,
        )
    except CRMError as exc:
        db.rollback()
        return error_response(exc, cors)
    except Exception as exc:  # pylint: disable=broad-except
        db.rollback()
        logger.error("Failed to handle meetings request: %s", exc)
        return json_response({"error": "Failed to save meeting", "details": str(exc)}, status_code=500, cors=cors)
    finally:
        db.close()


def handle_meeting_detail(req: func.HttpRequest) -> func.HttpResponse:
    cors = build_cors_headers(req, ["GET", "PUT", "DELETE", "OPTIONS"])
    if req.method == "OPTIONS":
        return func.HttpResponse("", status_code=204, headers=cors)
    if req.method not in {"GET", "PUT", "DELETE"}:
        return method_not_allowed(cors)

    meeting_id = str(req.route_params.get("meeting_id") or "").strip()
    db = SessionLocal()
    try:
        require_actor(req)
        if req.method == "GET":
            return json_response({"item": meeting_to_dict(get_meeting(db, meeting_id))}, status_code=200, cors=cors)

        if req.method == "PUT":
            data = validate_meeting_payload(parse_json_body(req))
            meeting = update_meeting(db, meeting_id, data)
            db.commit()
            return json_response(
                {"item": meeting_to_dict(meeting), "message": "Meeting updated successfully"},
                status_code=200,
                cors=cors,
            )

        if not delete_meeting(db, meeting_id):
            raise NotFound("Meeting not found")
        db.commit()
        return json_response({"ok": True, "message": "Meeting deleted successfully"}, status_code=200, cors=cors)
    except CRMError as exc:
        db.rollback()
        return error_response(exc, cors)
    except Exception as exc:  # pylint: disable=broad-except
        db.rollback()
        logger.error("Failed to handle meeting %s: %s", meeting_id, exc)
        return json_response({"error": "Failed to save meeting", "details": str(exc)}, status_code=500, cors=cors)
    finally:
        db.close()


def handle_time_slots(req: func.HttpRequest, now: Optional[datetime] = None) -> func.HttpResponse:
    """Start/end picker options for the requested dates, in the requested zone."""
    cors = build_cors_headers(req, ["GET", "OPTIONS"])
    if req.method == "OPTIONS":
        return func.HttpResponse("", status_code=204, headers=cors)
    if req.method != "GET":
        return method_not_allowed(cors)

    now = now or datetime.now(timezone.utc)
    try:
        tz = normalize_timezone(req.params.get("timezone"))
        start_date = parse_date(req.params.get("startDate"))
        end_date = parse_date(req.params.get("endDate")) or start_date
        start_time = _slot_param(req.params.get("startTime"))
        start_slots = available_time_slots(start_date, now, field="start", tz=tz)
        end_slots = available_time_slots(
            end_date,
            now,
            field="end",
            start_date=start_date,
            start_time=start_time,
            tz=tz,
        )
    except CRMError as exc:
        return error_response(exc, cors)

    default_start, default_end = default_meeting_window(now.astimezone(get_zone(tz)))
    payload: Dict[str, Any] = {
        "timezone": tz,
        "timezones": [{"value": value, "label": label} for value, label in TIMEZONES],
        "startSlots": _slot_options(start_slots),
        "endSlots": _slot_options(end_slots),
        "defaults": {
            "startDate": default_start.date().isoformat(),
            "startTime": default_start.strftime("%H:%M"),
            "endDate": default_end.date().isoformat(),
            "endTime": default_end.strftime("%H:%M"),
        },
    }
    try:
        payload["firstAvailableStart"] = first_available_slot(start_date, now, field="start", tz=tz)
    except NoAvailableSlotError as exc:
        payload["firstAvailableStart"] = None
        payload["message"] = exc.message
    try:
        payload["firstAvailableEnd"] = first_available_slot(
            end_date,
            now,
            field="end",
            start_date=start_date,
            start_time=start_time,
            tz=tz,
        )
    except NoAvailableSlotError as exc:
        payload["firstAvailableEnd"] = None
        payload["message"] = exc.message
    return json_response(payload, status_code=200, cors=cors)


def handle_attendee_options(req: func.HttpRequest) -> func.HttpResponse:
    cors = build_cors_headers(req, ["GET", "OPTIONS"])
    if req.method == "OPTIONS":
        return func.HttpResponse("", status_code=204, headers=cors)
    if req.method != "GET":
        return method_not_allowed(cors)
    try:
        require_actor(req)
        options = fetch_attendee_options()
    except CRMError as exc:
        return error_response(exc, cors)
    except Exception as exc:  # pylint: disable=broad-except
        logger.error("Failed to load attendee options: %s", exc)
        return json_response({"error": "Failed to load attendee options", "details": str(exc)}, status_code=500, cors=cors)
    return json_response(options, status_code=200, cors=cors)


@app.function_name(name="Meetings")
@app.route(route="meetings", methods=["GET", "POST", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def meetings(req: func.HttpRequest) -> func.HttpResponse:
    return handle_meetings(req)


@app.function_name(name="MeetingTimeSlots")
@app.route(route="meetings/time-slots", methods=["GET", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def meeting_time_slots(req: func.HttpRequest) -> func.HttpResponse:
    return handle_time_slots(req)


@app.function_name(name="MeetingAttendeeOptions")
@app.route(route="meetings/attendee-options", methods=["GET", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def meeting_attendee_options(req: func.HttpRequest) -> func.HttpResponse:
    return handle_attendee_options(req)


@app.function_name(name="MeetingDetail")
@app.route(route="meetings/{meeting_id}", methods=["GET", "PUT", "DELETE", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def meeting_detail(req: func.HttpRequest) -> func.HttpResponse:
    return handle_meeting_detail(req)
