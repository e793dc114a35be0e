from __future__ import annotations

import base64
import hashlib
import hmac
import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

import azure.functions as func
from sqlalchemy import func as sa_func

from services.crm_rbac import Role, normalize_role
from services.errors import CRMError, Unauthenticated
from shared.config import get_setting
from shared.db import SessionLocal, User


@dataclass
class CRMActor:
    user_id: str
    email: str
    role: Role
    full_name: Optional[str] = None


SESSION_SECRET_SETTINGS = ("AUTH_SESSION_SECRET", "APP_SESSION_SECRET", "JWT_SECRET", "SECRET_KEY")
DEFAULT_SESSION_TTL = 12 * 60 * 60
MIN_SESSION_TTL = 15 * 60
MAX_SESSION_TTL = 7 * 24 * 60 * 60


def _clean_email(value: Any) -> str:
    return str(value or "").strip().lower()


def _encode_segment(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _decode_segment(segment: str) -> Optional[bytes]:
    if not segment:
        return None
    try:
        return base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))
    except (ValueError, TypeError):
        return None


def _session_secret() -> Optional[bytes]:
    for name in SESSION_SECRET_SETTINGS:
        value = str(get_setting(name) or "").strip()
        if value:
            return value.encode("utf-8")
    return None


def _session_ttl() -> int:
    raw = str(get_setting("AUTH_SESSION_TTL_SECONDS") or "").strip()
    ttl = int(raw) if raw.isdigit() else DEFAULT_SESSION_TTL
    return min(MAX_SESSION_TTL, max(MIN_SESSION_TTL, ttl))


def _sign(secret: bytes, claims_bytes: bytes) -> bytes:
    return hmac.new(secret, claims_bytes, hashlib.sha256).digest()


def _bearer_token(req: func.HttpRequest) -> str:
    header = str((req.headers or {}).get("Authorization") or "").strip()
    scheme, _, value = header.partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return value.strip()


def issue_auth_session_token(
    email: str,
    *,
    user_id: Optional[str] = None,
    ttl_seconds: Optional[int] = None,
) -> Tuple[Optional[str], Optional[str]]:
    """
    Sign a CRM session for ``email``. Returns ``(token, expires_at_iso)``, or
    ``(None, None)`` when no email or no signing secret is available.

    Token layout: ``base64url(claims_json).base64url(hmac_sha256)`` with claims
    ``email``, ``exp`` (unix seconds) and optionally ``sub`` (user id).
    """
    email = _clean_email(email)
    secret = _session_secret()
    if not email or secret is None:
        return None, None
    lifetime = ttl_seconds if isinstance(ttl_seconds, int) and ttl_seconds > 0 else _session_ttl()
    expires_at = datetime.now(timezone.utc) + timedelta(seconds=lifetime)
    claims: Dict[str, Any] = {"email": email, "exp": int(expires_at.timestamp())}
    if user_id:
        claims["sub"] = str(user_id)
    claims_bytes = json.dumps(claims, sort_keys=True, separators=(",", ":")).encode("utf-8")
    token = ".".join([_encode_segment(claims_bytes), _encode_segment(_sign(secret, claims_bytes))])
    return token, expires_at.isoformat()


def verify_auth_session_token(token: str) -> Optional[Dict[str, Any]]:
    """Claims of a valid, unexpired session token, else None."""
    claims_part, _, signature_part = str(token or "").strip().partition(".")
    claims_bytes = _decode_segment(claims_part)
    signature = _decode_segment(signature_part)
    secret = _session_secret()
    if not claims_bytes or not signature or secret is None:
        return None
    if not hmac.compare_digest(_sign(secret, claims_bytes), signature):
        return None
    try:
        claims = json.loads(claims_bytes.decode("utf-8"))
        expires = int(claims.get("exp") or 0)
    except (UnicodeDecodeError, ValueError, TypeError, AttributeError):
        return None
    if expires <= datetime.now(timezone.utc).timestamp():
        return None
    claims["email"] = _clean_email(claims.get("email"))
    return claims if claims["email"] else None


def resolve_actor_for_email(db, email: str) -> Optional[CRMActor]:
    email = _clean_email(email)
    if not email:
        return None
    user = db.query(User).filter(sa_func.lower(sa_func.trim(User.email)) == email).first()
    if user is None:
        return None
    # Users without a user_roles row get the least privileged role.
    return CRMActor(
        user_id=str(user.id),
        email=email,
        role=normalize_role(user.role.role if user.role else None),
        full_name=user.full_name,
    )


def resolve_actor_from_session(req: func.HttpRequest) -> Optional[CRMActor]:
    claims = verify_auth_session_token(_bearer_token(req))
    if not claims:
        return None
    db = SessionLocal()
    try:
        actor = resolve_actor_for_email(db, claims["email"])
    finally:
        db.close()
    # A token minted for a different account with the same email is rejected.
    if actor is None or (claims.get("sub") and str(claims["sub"]) != actor.user_id):
        return None
    return actor


MAX_PAGE_SIZE = 500


def json_response(data: Any, *, status_code: int, cors: Dict[str, str]) -> func.HttpResponse:
    return func.HttpResponse(
        json.dumps(data),
        status_code=status_code,
        mimetype="application/json",
        headers=cors,
    )


def error_response(exc: CRMError, cors: Dict[str, str]) -> func.HttpResponse:
    return json_response(exc.to_payload(), status_code=exc.http_status, cors=cors)


def method_not_allowed(cors: Dict[str, str]) -> func.HttpResponse:
    return json_response({"error": "Method not allowed", "code": "method_not_allowed"}, status_code=405, cors=cors)


def parse_json_body(req: func.HttpRequest) -> Dict[str, Any]:
    try:
        payload = req.get_json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


def get_limit(req: func.HttpRequest, default: int = 200) -> int:
    raw = req.params.get("limit")
    try:
        parsed = int(raw) if raw else default
    except ValueError:
        parsed = default
    return max(1, min(MAX_PAGE_SIZE, parsed))


def require_actor(req: func.HttpRequest) -> CRMActor:
    actor = resolve_actor_from_session(req)
    if not actor:
        raise Unauthenticated("CRM authentication required")
    return actor
