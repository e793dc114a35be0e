from __future__ import annotations

import os
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlparse

import azure.functions as func

ALLOWED_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]


def _allowed_origins() -> List[str]:
    raw = os.getenv("ALLOWED_ORIGINS") or os.getenv("CORS_ALLOWED_ORIGINS") or "*"
    origins: List[str] = []
    for origin in raw.split(","):
        cleaned = origin.strip().rstrip("/")
        if not cleaned:
            continue
        if cleaned == "*":
            return ["*"]
        origins.append(cleaned)
    return origins


def _allow_credentials() -> bool:
    return str(os.getenv("CORS_ALLOW_CREDENTIALS") or "").strip().lower() in {"1", "true", "yes", "y"}


def _allow_localhost() -> bool:
    return str(os.getenv("CORS_ALLOW_LOCALHOST") or "true").strip().lower() in {"1", "true", "yes", "y"}


def _is_local_origin(origin: Optional[str]) -> bool:
    if not origin:
        return False
    _, host, _ = _split_origin(origin)
    return host in {"localhost", "127.0.0.1"}


def _split_origin(value: str, *, default_scheme: Optional[str] = None) -> Tuple[Optional[str], Optional[str], Optional[int]]:
    text = str(value or "").strip().rstrip("/")
    if not text:
        return None, None, None
    has_scheme = "://" in text
    if not has_scheme and default_scheme:
        text = f"{default_scheme}://{text}"
    parsed = urlparse(text)
    host = (parsed.hostname or "").lower()
    if not host:
        return None, None, None
    try:
        port = parsed.port
    except ValueError:
        return None, None, None
    return ((parsed.scheme or "").lower() if has_scheme else None), host, port


def _origin_matches(origin: Optional[str], allowed_origin: str) -> bool:
    if not origin or not allowed_origin:
        return False
    if allowed_origin == "*":
        return True
    origin_scheme, origin_host, origin_port = _split_origin(origin, default_scheme="https")
    allowed_scheme, allowed_host, allowed_port = _split_origin(allowed_origin, default_scheme="https")
    if not origin_host or not allowed_host:
        return False
    if "://" in allowed_origin and allowed_scheme != origin_scheme:
        return False
    if allowed_port is not None and allowed_port != origin_port:
        return False
    if allowed_host.startswith("*."):
        suffix = allowed_host[2:]
        return origin_host == suffix or origin_host.endswith(f".{suffix}")
    return origin_host == allowed_host


def build_cors_headers(req: func.HttpRequest, allowed_methods: Iterable[str]) -> Dict[str, str]:
    """Return CORS headers for the request origin if allowed."""
    origin = req.headers.get("origin") or req.headers.get("Origin")
    methods: List[str] = []
    for method in allowed_methods:
        normalized = method.strip().upper()
        if normalized and normalized not in methods:
            methods.append(normalized)
    if "OPTIONS" not in methods:
        methods.append("OPTIONS")

    allowed = _allowed_origins()
    allow_all = "*" in allowed
    headers: Dict[str, str] = {"Vary": "Origin"}
    origin_allowed = allow_all or any(_origin_matches(origin, item) for item in allowed)
    if not origin_allowed and _allow_localhost() and _is_local_origin(origin):
        origin_allowed = True
    if not origin_allowed:
        return headers

    credentials = _allow_credentials()
    if credentials and origin:
        headers["Access-Control-Allow-Origin"] = origin
        headers["Access-Control-Allow-Credentials"] = "true"
    else:
        headers["Access-Control-Allow-Origin"] = "*" if allow_all else (origin or "*")
    headers["Access-Control-Allow-Methods"] = ", ".join(methods)
    headers["Access-Control-Allow-Headers"] = ", ".join(ALLOWED_HEADERS)
    return headers
