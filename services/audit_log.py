from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, List, Optional
from uuid import uuid4

from azure.core.exceptions import ResourceExistsError
from azure.data.tables import TableServiceClient

logger = logging.getLogger(__name__)

AUDIT_TABLE = os.getenv("CRM_AUDIT_TABLE", "CRMAuditLog")
AUDIT_PARTITION = os.getenv("CRM_AUDIT_PARTITION", "security")

_service_client: Optional[TableServiceClient] = None
_table_client = None
_table_lock = Lock()

_memory_lock = Lock()
_memory_store: List[Dict[str, Any]] = []


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _new_row_key() -> str:
    # Reverse-chronological row keys so newest entries list first.
    ts_ms = int(datetime.now(timezone.utc).timestamp() * 1000)
    return f"{9999999999999 - ts_ms:013d}_{uuid4().hex[:12]}"


def _get_table_client():
    global _service_client, _table_client
    if _table_client is not None:
        return _table_client
    conn_str = os.getenv("AZURE_STORAGE_CONNECTION_STRING")
    if not conn_str:
        return None
    with _table_lock:
        if _table_client is not None:
            return _table_client
        if _service_client is None:
            _service_client = TableServiceClient.from_connection_string(conn_str)
        client = _service_client.get_table_client(AUDIT_TABLE)
        try:
            client.create_table()
        except ResourceExistsError:
            pass
        _table_client = client
        return client


def _decode(entity: Dict[str, Any]) -> Dict[str, Any]:
    details = entity.get("detailsJson")
    try:
        decoded = json.loads(details) if isinstance(details, str) else (details or {})
    except json.JSONDecodeError:
        decoded = {"raw": details}
    return {
        "id": entity.get("RowKey"),
        "action": entity.get("action"),
        "resourceType": entity.get("resourceType"),
        "resourceId": entity.get("resourceId"),
        "userId": entity.get("userId"),
        "details": decoded,
        "createdAt": entity.get("createdAt"),
    }


def write_audit_event(
    *,
    action: str,
    resource_type: str,
    resource_id: Optional[str] = None,
    user_id: Optional[str] = None,
    details: Optional[dict] = None,
) -> Dict[str, Any]:
    """Persist one security audit record. Raises on storage failure."""
    entity = {
        "PartitionKey": AUDIT_PARTITION,
        "RowKey": _new_row_key(),
        "action": action,
        "resourceType": resource_type,
        "resourceId": resource_id or "",
        "userId": user_id or "",
        "detailsJson": json.dumps(details or {}, ensure_ascii=True, separators=(",", ":")),
        "createdAt": utc_now_iso(),
    }
    client = _get_table_client()
    if client is not None:
        client.create_entity(entity=entity)
    else:
        with _memory_lock:
            _memory_store.append(entity)
    return _decode(entity)


def list_audit_events(*, limit: int = 50, action: Optional[str] = None) -> List[Dict[str, Any]]:
    safe_limit = max(1, min(200, int(limit or 50)))
    client = _get_table_client()
    if client is not None:
        filter_expr = f"PartitionKey eq '{AUDIT_PARTITION}'"
        if action:
            filter_expr += " and action eq '{}'".format(action.replace("'", "''"))
        rows = [_decode(item) for item in client.query_entities(query_filter=filter_expr)]
    else:
        with _memory_lock:
            rows = [_decode(item) for item in _memory_store if not action or item.get("action") == action]
    rows.sort(key=lambda item: str(item.get("id") or ""))
    return rows[:safe_limit]


def reset_memory_store_for_tests() -> None:
    with _memory_lock:
        _memory_store.clear()
