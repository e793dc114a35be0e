"""
Teams online-meeting provisioning through Microsoft Graph.

The chain is strictly sequential: app token -> organizer lookup -> meeting
create. Any failing step aborts the chain with the matching CRM error; nothing
is retried.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

import requests

from services.audit_log import utc_now_iso, write_audit_event
from services.errors import (
    AuthProviderError,
    ConfigurationError,
    InvalidRequest,
    MeetingCreationError,
    OrganizerNotFoundError,
    Unauthenticated,
)
from shared.config import get_graph_settings, get_http_timeout

logger = logging.getLogger(__name__)

AUDIT_ACTION = "TEAMS_MEETING_CREATED"


class GraphErrorKind(str, Enum):
    AUTHENTICATION = "authentication"
    RESOURCE_NOT_FOUND = "resource_not_found"
    OTHER = "other"


_GRAPH_ERROR_CODES = {
    "AuthenticationError": GraphErrorKind.AUTHENTICATION,
    "InvalidAuthenticationToken": GraphErrorKind.AUTHENTICATION,
    "ResourceNotFound": GraphErrorKind.RESOURCE_NOT_FOUND,
    "Request_ResourceNotFound": GraphErrorKind.RESOURCE_NOT_FOUND,
}


@dataclass
class Attendee:
    email: str
    name: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"email": self.email, "name": self.name}


@dataclass
class TeamsMeetingRequest:
    subject: str
    start_time: str
    end_time: str
    attendees: List[Attendee] = field(default_factory=list)


@dataclass
class TeamsMeeting:
    id: str
    join_url: Optional[str]
    join_information: Any
    subject: Optional[str]
    start_date_time: Optional[str]
    end_date_time: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "joinUrl": self.join_url,
            "joinInformation": self.join_information,
            "subject": self.subject,
            "startDateTime": self.start_date_time,
            "endDateTime": self.end_date_time,
        }


@dataclass
class StepResult:
    """Outcome of one Graph call: either ``value`` or an error kind and message."""

    value: Any = None
    status_code: Optional[int] = None
    error_kind: Optional[GraphErrorKind] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error_kind is None


def _json_or_empty(resp: requests.Response) -> Dict[str, Any]:
    try:
        payload = resp.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


def _graph_failure(resp: requests.Response) -> StepResult:
    payload = _json_or_empty(resp)
    error = payload.get("error") if isinstance(payload.get("error"), dict) else {}
    code = str(error.get("code") or "")
    return StepResult(
        status_code=resp.status_code,
        error_kind=_GRAPH_ERROR_CODES.get(code, GraphErrorKind.OTHER),
        error_code=code or None,
        error_message=error.get("message") or resp.text or None,
    )


def _transport_failure(exc: requests.RequestException) -> StepResult:
    return StepResult(error_kind=GraphErrorKind.OTHER, error_message=str(exc))


def parse_meeting_request(body: Any) -> TeamsMeetingRequest:
    if not isinstance(body, dict):
        raise InvalidRequest("Missing required fields: subject, attendees, startTime, endTime")
    subject = str(body.get("subject") or "").strip()
    raw_attendees = body.get("attendees")
    start_time = str(body.get("startTime") or "").strip()
    end_time = str(body.get("endTime") or "").strip()
    # An empty attendee list is fine; a missing one is not.
    if not subject or raw_attendees is None or not start_time or not end_time:
        raise InvalidRequest("Missing required fields: subject, attendees, startTime, endTime")
    if not isinstance(raw_attendees, list):
        raise InvalidRequest("attendees must be a list")
    attendees: List[Attendee] = []
    for raw in raw_attendees:
        if not isinstance(raw, dict):
            raise InvalidRequest("Each attendee needs an email and a name")
        email = str(raw.get("email") or "").strip()
        if not email:
            raise InvalidRequest("Each attendee needs an email and a name")
        attendees.append(Attendee(email=email, name=str(raw.get("name") or "").strip()))
    return TeamsMeetingRequest(subject=subject, start_time=start_time, end_time=end_time, attendees=attendees)


def request_app_token(settings: Optional[dict] = None) -> StepResult:
    settings = settings or get_graph_settings()
    tenant = settings.get("tenant")
    client_id = settings.get("client_id")
    client_secret = settings.get("client_secret")
    if not tenant or not client_id or not client_secret:
        raise ConfigurationError(
            "Missing Azure credentials. Please configure AZURE_TENANT_ID, AZURE_CLIENT_ID, and AZURE_CLIENT_SECRET."
        )

    logger.info("Fetching access token from Azure AD")
    token_url = f"{settings['authority']}/{tenant}/oauth2/v2.0/token"
    payload = {
        "client_id": client_id,
        "client_secret": client_secret,
        "scope": settings.get("scope") or "https://graph.microsoft.com/.default",
        "grant_type": "client_credentials",
    }
    try:
        resp = requests.post(token_url, data=payload, timeout=get_http_timeout())
    except requests.RequestException as exc:
        return _transport_failure(exc)
    data = _json_or_empty(resp)
    if resp.status_code != 200 or not data.get("access_token"):
        return StepResult(
            status_code=resp.status_code,
            error_kind=GraphErrorKind.AUTHENTICATION,
            error_code=data.get("error"),
            error_message=data.get("error_description") or "Failed to get access token from Azure AD",
        )
    return StepResult(value=data["access_token"], status_code=resp.status_code)


def lookup_organizer(access_token: str, email: str, settings: Optional[dict] = None) -> StepResult:
    settings = settings or get_graph_settings()
    url = f"{settings['graph_base']}/users/{quote(email, safe='')}"
    try:
        resp = requests.get(
            url,
            headers={"Authorization": f"Bearer {access_token}", "Content-Type": "application/json"},
            timeout=get_http_timeout(),
        )
    except requests.RequestException as exc:
        return _transport_failure(exc)
    if resp.status_code != 200:
        return _graph_failure(resp)
    organizer_id = _json_or_empty(resp).get("id")
    if not organizer_id:
        return StepResult(status_code=resp.status_code, error_kind=GraphErrorKind.RESOURCE_NOT_FOUND)
    return StepResult(value=organizer_id, status_code=resp.status_code)


def build_meeting_body(request: TeamsMeetingRequest) -> Dict[str, Any]:
    return {
        "startDateTime": request.start_time,
        "endDateTime": request.end_time,
        "subject": request.subject,
        "lobbyBypassSettings": {
            "scope": "everyone",
            "isDialInBypassEnabled": True,
        },
        "allowedPresenters": "everyone",
    }


def create_online_meeting(
    access_token: str,
    organizer_id: str,
    request: TeamsMeetingRequest,
    settings: Optional[dict] = None,
) -> StepResult:
    settings = settings or get_graph_settings()
    url = f"{settings['graph_base']}/users/{quote(organizer_id, safe='')}/onlineMeetings"
    try:
        resp = requests.post(
            url,
            json=build_meeting_body(request),
            headers={"Authorization": f"Bearer {access_token}", "Content-Type": "application/json"},
            timeout=get_http_timeout(),
        )
    except requests.RequestException as exc:
        return _transport_failure(exc)
    if resp.status_code not in (200, 201):
        return _graph_failure(resp)
    data = _json_or_empty(resp)
    meeting = TeamsMeeting(
        id=str(data.get("id") or ""),
        join_url=data.get("joinWebUrl"),
        join_information=data.get("joinInformation"),
        subject=data.get("subject"),
        start_date_time=data.get("startDateTime"),
        end_date_time=data.get("endDateTime"),
    )
    return StepResult(value=meeting, status_code=resp.status_code)


def _raise_for_token(result: StepResult) -> None:
    if result.ok:
        return
    raise AuthProviderError(result.error_message or "Failed to get access token from Azure AD")


def _raise_for_organizer(result: StepResult, email: str) -> None:
    if result.ok:
        return
    raise OrganizerNotFoundError(
        f"Cannot find user in Azure AD: {email}. "
        "Please ensure the Azure App has User.Read.All permission with admin consent, "
        "or the user exists in your Azure AD tenant.",
        details=result.error_message,
    )


def _raise_for_meeting(result: StepResult, email: str) -> None:
    if result.ok:
        return
    if result.error_kind is GraphErrorKind.AUTHENTICATION:
        raise MeetingCreationError(
            "Authentication error with Microsoft Graph. "
            "Please ensure the Azure App has OnlineMeetings.ReadWrite.All permission with admin consent.",
            kind="authentication",
            details=result.error_message,
        )
    if result.error_kind is GraphErrorKind.RESOURCE_NOT_FOUND:
        raise MeetingCreationError(
            f"User {email} does not have a Teams license or is not enabled for online meetings.",
            kind="license",
            details=result.error_message,
        )
    raise MeetingCreationError(result.error_message or "Failed to create Teams meeting")


def provision_teams_meeting(
    actor,
    body: Any,
    *,
    audit: Callable[..., Any] = write_audit_event,
    settings: Optional[dict] = None,
) -> TeamsMeeting:
    """
    Create a Teams meeting organised by the authenticated ``actor``.

    ``actor`` is the resolved session identity (see ``crm_shared.CRMActor``);
    ``None`` means the caller is not signed in.
    """
    if actor is None or not getattr(actor, "email", None):
        raise Unauthenticated("Authentication required")

    request = parse_meeting_request(body)
    logger.info(
        "Creating Teams meeting subject=%s attendees=%s start=%s end=%s",
        request.subject,
        len(request.attendees),
        request.start_time,
        request.end_time,
    )

    settings = settings or get_graph_settings()
    token = request_app_token(settings)
    _raise_for_token(token)

    organizer = lookup_organizer(token.value, actor.email, settings)
    _raise_for_organizer(organizer, actor.email)
    logger.info("Found organizer user id %s", organizer.value)

    created = create_online_meeting(token.value, organizer.value, request, settings)
    _raise_for_meeting(created, actor.email)
    meeting: TeamsMeeting = created.value

    try:
        audit(
            action=AUDIT_ACTION,
            resource_type="meeting",
            resource_id=meeting.id,
            user_id=actor.user_id,
            details={
                "meeting_id": meeting.id,
                "subject": request.subject,
                "attendee_count": len(request.attendees),
                "created_by": actor.user_id,
                "join_url": meeting.join_url,
                "created_at": utc_now_iso(),
            },
        )
    except Exception as exc:  # pylint: disable=broad-except
        logger.warning("Failed to log security event for meeting %s: %s", meeting.id, exc)
    logger.info("Teams meeting created successfully: %s", meeting.id)
    return meeting
