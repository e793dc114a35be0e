from __future__ import annotations

import logging
from typing import Optional

import azure.functions as func

from crm_shared import (
    error_response,
    json_response,
    method_not_allowed,
    parse_json_body,
    resolve_actor_from_session,
)
from function_app import app
from repository.crm_repo import build_attendees
from repository.meetings_repo import set_join_url
from services.errors import CRMError
from services.teams_meetings import TeamsMeeting, provision_teams_meeting
from shared.db import SessionLocal
from utils.cors import build_cors_headers

logger = logging.getLogger(__name__)


def _attach_join_url(meeting_id: Optional[str], meeting: TeamsMeeting) -> None:
    if not meeting_id or not meeting.join_url:
        return
    db = SessionLocal()
    try:
        set_join_url(db, str(meeting_id), meeting.join_url)
        db.commit()
    except Exception as exc:  # pylint: disable=broad-except
        db.rollback()
        logger.warning("Failed to store join URL on meeting %s: %s", meeting_id, exc)
    finally:
        db.close()


def _fill_attendees_from_links(body: dict) -> None:
    # Callers may send the linked lead/contact instead of an explicit attendee list.
    lead_id = body.get("leadId") or body.get("lead_id")
    contact_id = body.get("contactId") or body.get("contact_id")
    if "attendees" in body or not (lead_id or contact_id):
        return
    db = SessionLocal()
    try:
        body["attendees"] = build_attendees(db, lead_id, contact_id)
    finally:
        db.close()


def handle_create_teams_meeting(req: func.HttpRequest, *, provision=provision_teams_meeting) -> func.HttpResponse:
    cors = build_cors_headers(req, ["POST", "OPTIONS"])
    if req.method == "OPTIONS":
        return func.HttpResponse("", status_code=204, headers=cors)
    if req.method != "POST":
        return method_not_allowed(cors)

    body = parse_json_body(req)
    try:
        actor = resolve_actor_from_session(req)
        if actor is not None:
            _fill_attendees_from_links(body)
        meeting = provision(actor, body)
    except CRMError as exc:
        if exc.http_status >= 500:
            logger.error("Teams meeting creation failed: %s", exc.message)
        return error_response(exc, cors)
    except Exception as exc:  # pylint: disable=broad-except
        logger.error("Unexpected error creating Teams meeting: %s", exc)
        return json_response(
            {"error": "Failed to create Teams meeting", "details": str(exc)},
            status_code=500,
            cors=cors,
        )

    _attach_join_url(body.get("meetingId") or body.get("meeting_id"), meeting)
    return json_response(
        {
            "success": True,
            "meeting": meeting.to_dict(),
            "message": "Teams meeting created successfully",
        },
        status_code=200,
        cors=cors,
    )


@app.function_name(name="CreateTeamsMeeting")
@app.route(route="create-teams-meeting", methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def create_teams_meeting(req: func.HttpRequest) -> func.HttpResponse:
    return handle_create_teams_meeting(req)
