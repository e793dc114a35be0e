from __future__ import annotations

import logging

import azure.functions as func

from crm_shared import (
    CRMActor,
    error_response,
    json_response,
    method_not_allowed,
    parse_json_body,
    require_actor,
)
from function_app import app
from repository.crm_repo import dashboard_summary, list_page_permissions, upsert_page_permission
from services.audit_log import write_audit_event
from services.crm_rbac import (
    can_manage_permissions,
    permission_map,
    visible_dashboard_cards,
    visible_menu_items,
)
from services.errors import CRMError, Forbidden
from shared.db import SessionLocal
from utils.cors import build_cors_headers

logger = logging.getLogger(__name__)


def _audit_permission_change(actor: CRMActor, rule) -> None:
    try:
        write_audit_event(
            action="PAGE_PERMISSION_UPDATED",
            resource_type="page_permission",
            resource_id=rule.route,
            user_id=actor.user_id,
            details=rule.to_dict(),
        )
    except Exception as exc:  # pylint: disable=broad-except
        logger.warning("Failed to log permission change for %s: %s", rule.route, exc)


def handle_navigation(req: func.HttpRequest) -> func.HttpResponse:
    cors = build_cors_headers(req, ["GET", "OPTIONS"])
    if req.method == "OPTIONS":
        return func.HttpResponse("", status_code=204, headers=cors)
    if req.method != "GET":
        return method_not_allowed(cors)

    db = SessionLocal()
    try:
        actor = require_actor(req)
        permissions = permission_map(list_page_permissions(db))
        items = visible_menu_items(actor.role, permissions)
        return json_response(
            {
                "role": actor.role.value,
                "items": [{"title": item.title, "url": item.url, "route": item.route} for item in items],
            },
            status_code=200,
            cors=cors,
        )
    except CRMError as exc:
        return error_response(exc, cors)
    except Exception as exc:  # pylint: disable=broad-except
        logger.error("Failed to build navigation: %s", exc)
        return json_response({"error": "Failed to load navigation", "details": str(exc)}, status_code=500, cors=cors)
    finally:
        db.close()


def handle_dashboard_summary(req: func.HttpRequest) -> func.HttpResponse:
    cors = build_cors_headers(req, ["GET", "OPTIONS"])
    if req.method == "OPTIONS":
        return func.HttpResponse("", status_code=204, headers=cors)
    if req.method != "GET":
        return method_not_allowed(cors)

    db = SessionLocal()
    try:
        actor = require_actor(req)
        permissions = permission_map(list_page_permissions(db))
        cards = visible_dashboard_cards(actor.role, permissions)
        return json_response(
            {"role": actor.role.value, "cards": dashboard_summary(db, actor.user_id, cards)},
            status_code=200,
            cors=cors,
        )
    except CRMError as exc:
        return error_response(exc, cors)
    except Exception as exc:  # pylint: disable=broad-except
        logger.error("Failed to build dashboard summary: %s", exc)
        return json_response({"error": "Failed to load dashboard", "details": str(exc)}, status_code=500, cors=cors)
    finally:
        db.close()


def handle_page_permissions(req: func.HttpRequest) -> func.HttpResponse:
    cors = build_cors_headers(req, ["GET", "PUT", "OPTIONS"])
    if req.method == "OPTIONS":
        return func.HttpResponse("", status_code=204, headers=cors)
    if req.method not in {"GET", "PUT"}:
        return method_not_allowed(cors)

    db = SessionLocal()
    try:
        actor = require_actor(req)
        if req.method == "GET":
            rules = list_page_permissions(db)
            return json_response({"items": [rule.to_dict() for rule in rules]}, status_code=200, cors=cors)

        if not can_manage_permissions(actor.role):
            raise Forbidden("Only administrators can change page permissions")
        rule = upsert_page_permission(db, parse_json_body(req))
        db.commit()
        logger.info("Page permission %s updated by %s", rule.route, actor.user_id)
        _audit_permission_change(actor, rule)
        return json_response({"item": rule.to_dict()}, status_code=200, cors=cors)
    except CRMError as exc:
        db.rollback()
        return error_response(exc, cors)
    except Exception as exc:  # pylint: disable=broad-except
        db.rollback()
        logger.error("Failed to handle page permissions: %s", exc)
        return json_response({"error": "Failed to update permissions", "details": str(exc)}, status_code=500, cors=cors)
    finally:
        db.close()


@app.function_name(name="Navigation")
@app.route(route="navigation", methods=["GET", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def navigation(req: func.HttpRequest) -> func.HttpResponse:
    return handle_navigation(req)


@app.function_name(name="DashboardSummary")
@app.route(route="dashboard/summary", methods=["GET", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def dashboard(req: func.HttpRequest) -> func.HttpResponse:
    return handle_dashboard_summary(req)


@app.function_name(name="PagePermissions")
@app.route(route="page-permissions", methods=["GET", "PUT", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def page_permissions(req: func.HttpRequest) -> func.HttpResponse:
    return handle_page_permissions(req)
