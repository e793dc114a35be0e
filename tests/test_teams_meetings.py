import unittest
from types import SimpleNamespace
from unittest import mock

import requests

from services import audit_log
from services.errors import (
    AuthProviderError,
    ConfigurationError,
    InvalidRequest,
    MeetingCreationError,
    OrganizerNotFoundError,
    Unauthenticated,
)
from services.teams_meetings import AUDIT_ACTION, parse_meeting_request, provision_teams_meeting

SETTINGS = {
    "tenant": "tenant-1",
    "client_id": "client-1",
    "client_secret": "secret-1",
    "authority": "https://login.example.com",
    "graph_base": "https://graph.example.com/v1.0",
    "scope": "https://graph.microsoft.com/.default",
}

ACTOR = SimpleNamespace(user_id="user-1", email="owner@example.com")

BODY = {
    "subject": "Quarterly review",
    "attendees": [{"email": "lead@example.com", "name": "Lead Person"}],
    "startTime": "2025-03-10T13:30:00.000Z",
    "endTime": "2025-03-10T14:30:00.000Z",
}


def _response(status_code, payload=None, text=""):
    resp = mock.Mock()
    resp.status_code = status_code
    resp.text = text
    if payload is None:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = payload
    return resp


TOKEN_OK = _response(200, {"access_token": "token-abc", "token_type": "Bearer"})
ORGANIZER_OK = _response(200, {"id": "organizer-1", "mail": "owner@example.com"})
MEETING_OK = _response(
    201,
    {
        "id": "meeting-1",
        "joinWebUrl": "https://teams.example.com/l/meetup-join/1",
        "joinInformation": {"content": "data:text/html,join"},
        "subject": "Quarterly review",
        "startDateTime": "2025-03-10T13:30:00Z",
        "endDateTime": "2025-03-10T14:30:00Z",
    },
)


class ParseMeetingRequestTests(unittest.TestCase):
    def test_blank_subject_is_rejected(self):
        with self.assertRaises(InvalidRequest):
            parse_meeting_request(dict(BODY, subject="   "))

    def test_missing_attendees_key_is_rejected(self):
        body = dict(BODY)
        body.pop("attendees")
        with self.assertRaises(InvalidRequest):
            parse_meeting_request(body)

    def test_empty_attendee_list_is_accepted(self):
        request = parse_meeting_request(dict(BODY, attendees=[]))
        self.assertEqual(request.attendees, [])

    def test_attendee_without_email_is_rejected(self):
        with self.assertRaises(InvalidRequest):
            parse_meeting_request(dict(BODY, attendees=[{"name": "No Mail"}]))


@mock.patch("services.teams_meetings.requests.get")
@mock.patch("services.teams_meetings.requests.post")
class ProvisionTeamsMeetingTests(unittest.TestCase):
    def _provision(self, body=None, audit=None, settings=None, actor=ACTOR):
        return provision_teams_meeting(
            actor,
            BODY if body is None else body,
            audit=audit or mock.Mock(),
            settings=settings or SETTINGS,
        )

    def test_success_runs_the_chain_and_audits_once(self, post, get):
        post.side_effect = [TOKEN_OK, MEETING_OK]
        get.return_value = ORGANIZER_OK
        audit = mock.Mock()

        meeting = self._provision(audit=audit)

        self.assertEqual(
            meeting.to_dict(),
            {
                "id": "meeting-1",
                "joinUrl": "https://teams.example.com/l/meetup-join/1",
                "joinInformation": {"content": "data:text/html,join"},
                "subject": "Quarterly review",
                "startDateTime": "2025-03-10T13:30:00Z",
                "endDateTime": "2025-03-10T14:30:00Z",
            },
        )
        token_call, create_call = post.call_args_list
        self.assertEqual(token_call.args[0], "https://login.example.com/tenant-1/oauth2/v2.0/token")
        self.assertEqual(token_call.kwargs["data"]["grant_type"], "client_credentials")
        self.assertEqual(get.call_args.args[0], "https://graph.example.com/v1.0/users/owner%40example.com")
        self.assertEqual(create_call.args[0], "https://graph.example.com/v1.0/users/organizer-1/onlineMeetings")
        self.assertEqual(create_call.kwargs["json"]["subject"], "Quarterly review")
        self.assertEqual(create_call.kwargs["json"]["lobbyBypassSettings"]["scope"], "everyone")
        self.assertEqual(create_call.kwargs["headers"]["Authorization"], "Bearer token-abc")

        audit.assert_called_once()
        kwargs = audit.call_args.kwargs
        self.assertEqual(kwargs["action"], AUDIT_ACTION)
        self.assertEqual(kwargs["resource_id"], "meeting-1")
        self.assertEqual(kwargs["user_id"], "user-1")
        self.assertEqual(kwargs["details"]["attendee_count"], 1)
        self.assertEqual(kwargs["details"]["join_url"], "https://teams.example.com/l/meetup-join/1")

    def test_success_writes_to_the_audit_log(self, post, get):
        post.side_effect = [TOKEN_OK, MEETING_OK]
        get.return_value = ORGANIZER_OK
        audit_log.reset_memory_store_for_tests()
        with mock.patch("services.audit_log._get_table_client", return_value=None):
            self._provision(audit=audit_log.write_audit_event)
            events = audit_log.list_audit_events(action=AUDIT_ACTION)
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0]["resourceId"], "meeting-1")
        self.assertEqual(events[0]["details"]["subject"], "Quarterly review")

    def test_empty_attendee_list_succeeds(self, post, get):
        post.side_effect = [TOKEN_OK, MEETING_OK]
        get.return_value = ORGANIZER_OK
        meeting = self._provision(body=dict(BODY, attendees=[]))
        self.assertEqual(meeting.id, "meeting-1")

    def test_invalid_body_makes_no_network_call(self, post, get):
        with self.assertRaises(InvalidRequest):
            self._provision(body=dict(BODY, subject=""))
        post.assert_not_called()
        get.assert_not_called()

    def test_signed_out_caller_is_rejected(self, post, get):
        with self.assertRaises(Unauthenticated):
            self._provision(actor=None)
        post.assert_not_called()

    def test_missing_credentials(self, post, get):
        with self.assertRaises(ConfigurationError):
            self._provision(settings=dict(SETTINGS, client_secret=""))
        post.assert_not_called()

    def test_token_rejection_carries_provider_description(self, post, get):
        post.return_value = _response(
            401,
            {"error": "invalid_client", "error_description": "AADSTS7000215: Invalid client secret provided."},
        )
        with self.assertRaises(AuthProviderError) as ctx:
            self._provision()
        self.assertEqual(ctx.exception.message, "AADSTS7000215: Invalid client secret provided.")
        get.assert_not_called()

    def test_token_transport_failure(self, post, get):
        post.side_effect = requests.ConnectionError("connection refused")
        with self.assertRaises(AuthProviderError):
            self._provision()
        get.assert_not_called()

    def test_unknown_organizer_stops_before_create(self, post, get):
        post.return_value = TOKEN_OK
        get.return_value = _response(
            404,
            {"error": {"code": "Request_ResourceNotFound", "message": "Resource does not exist."}},
        )
        with self.assertRaises(OrganizerNotFoundError) as ctx:
            self._provision()
        self.assertIn("User.Read.All", ctx.exception.message)
        self.assertIn("owner@example.com", ctx.exception.message)
        self.assertEqual(post.call_count, 1)

    def test_create_authentication_error(self, post, get):
        post.side_effect = [
            TOKEN_OK,
            _response(401, {"error": {"code": "InvalidAuthenticationToken", "message": "Access token is empty."}}),
        ]
        get.return_value = ORGANIZER_OK
        with self.assertRaises(MeetingCreationError) as ctx:
            self._provision()
        self.assertEqual(ctx.exception.kind, "authentication")
        self.assertIn("OnlineMeetings.ReadWrite.All", ctx.exception.message)

    def test_create_license_error(self, post, get):
        post.side_effect = [
            TOKEN_OK,
            _response(404, {"error": {"code": "ResourceNotFound", "message": "User not found."}}),
        ]
        get.return_value = ORGANIZER_OK
        with self.assertRaises(MeetingCreationError) as ctx:
            self._provision()
        self.assertEqual(ctx.exception.kind, "license")
        self.assertIn("Teams license", ctx.exception.message)
        self.assertEqual(ctx.exception.to_payload()["kind"], "license")

    def test_create_generic_error_uses_graph_message(self, post, get):
        post.side_effect = [
            TOKEN_OK,
            _response(500, {"error": {"code": "InternalServerError", "message": "Something broke"}}),
        ]
        get.return_value = ORGANIZER_OK
        with self.assertRaises(MeetingCreationError) as ctx:
            self._provision()
        self.assertEqual(ctx.exception.kind, "generic")
        self.assertEqual(ctx.exception.message, "Something broke")

    def test_audit_failure_does_not_fail_provisioning(self, post, get):
        post.side_effect = [TOKEN_OK, MEETING_OK]
        get.return_value = ORGANIZER_OK
        audit = mock.Mock(side_effect=RuntimeError("table unavailable"))
        with self.assertLogs("services.teams_meetings", level="WARNING"):
            meeting = self._provision(audit=audit)
        self.assertEqual(meeting.id, "meeting-1")
        audit.assert_called_once()


if __name__ == "__main__":
    unittest.main()
