from __future__ import annotations

from typing import Optional


class CRMError(Exception):
    """Base class for errors that abort a user-initiated CRM action."""

    http_status = 500
    code = "internal_error"

    def __init__(self, message: str, *, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self) -> dict:
        payload = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class Unauthenticated(CRMError):
    http_status = 401
    code = "unauthenticated"


class Forbidden(CRMError):
    http_status = 403
    code = "forbidden"


class InvalidRequest(CRMError, ValueError):
    http_status = 400
    code = "invalid_request"


class MeetingValidationError(InvalidRequest):
    code = "invalid_meeting"


class NoAvailableSlotError(MeetingValidationError):
    code = "no_available_slot"

    def __init__(self, message: str = "No valid time available for the selected date"):
        super().__init__(message)


class NotFound(CRMError):
    http_status = 404
    code = "not_found"


class ConfigurationError(CRMError):
    code = "configuration_error"


class AuthProviderError(CRMError):
    code = "auth_provider_error"


class OrganizerNotFoundError(CRMError):
    code = "organizer_not_found"


class MeetingCreationError(CRMError):
    code = "meeting_creation_failed"

    def __init__(self, message: str, *, kind: str = "generic", details: Optional[str] = None):
        super().__init__(message, details=details)
        self.kind = kind

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["kind"] = self.kind
        return payload
