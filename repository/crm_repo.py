from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import func as sa_func, or_

from services.crm_rbac import DashboardCard, PagePermission as PagePermissionRule, to_page_permission
from services.errors import InvalidRequest
from shared.db import Account, Contact, Deal, Lead, Meeting, PagePermission, SessionLocal, Task


def lead_option(lead: Lead) -> Dict[str, Any]:
    return {"id": lead.id, "lead_name": lead.lead_name, "email": lead.email}


def contact_option(contact: Contact) -> Dict[str, Any]:
    return {"id": contact.id, "contact_name": contact.contact_name, "email": contact.email}


def list_lead_options(db) -> List[Dict[str, Any]]:
    return [lead_option(row) for row in db.query(Lead).order_by(Lead.lead_name.asc()).all()]


def list_contact_options(db) -> List[Dict[str, Any]]:
    return [contact_option(row) for row in db.query(Contact).order_by(Contact.contact_name.asc()).all()]


def _with_session(loader: Callable[[Any], List[Dict[str, Any]]], session_factory) -> List[Dict[str, Any]]:
    db = session_factory()
    try:
        return loader(db)
    finally:
        db.close()


def fetch_attendee_options(session_factory=None) -> Dict[str, List[Dict[str, Any]]]:
    """
    Load leads and contacts for the attendee pickers. The two queries are
    independent and run side by side, each on its own session.
    """
    session_factory = session_factory or SessionLocal
    with ThreadPoolExecutor(max_workers=2) as pool:
        leads_future = pool.submit(_with_session, list_lead_options, session_factory)
        contacts_future = pool.submit(_with_session, list_contact_options, session_factory)
        return {"leads": leads_future.result(), "contacts": contacts_future.result()}


def build_attendees(db, lead_id: Optional[str], contact_id: Optional[str]) -> List[Dict[str, str]]:
    attendees: List[Dict[str, str]] = []
    if lead_id:
        lead = db.query(Lead).filter(Lead.id == lead_id).one_or_none()
        if lead and lead.email:
            attendees.append({"email": lead.email, "name": lead.lead_name})
    if contact_id:
        contact = db.query(Contact).filter(Contact.id == contact_id).one_or_none()
        if contact and contact.email:
            attendees.append({"email": contact.email, "name": contact.contact_name})
    return attendees


def list_page_permissions(db) -> List[PagePermissionRule]:
    rows = db.query(PagePermission).order_by(PagePermission.route.asc()).all()
    return [rule for rule in (to_page_permission(row) for row in rows) if rule]


def upsert_page_permission(db, payload: Dict[str, Any]) -> PagePermissionRule:
    rule = to_page_permission(payload)
    if rule is None or not rule.route.startswith("/"):
        raise InvalidRequest("route is required and must start with '/'")
    row = db.query(PagePermission).filter(PagePermission.route == rule.route).one_or_none()
    if row is None:
        row = PagePermission(route=rule.route)
        db.add(row)
    row.admin_access = rule.admin_access
    row.manager_access = rule.manager_access
    row.user_access = rule.user_access
    if payload.get("page_name"):
        row.page_name = str(payload["page_name"]).strip()
    db.flush()
    return rule


CLOSED_DEAL_STAGES = {"Won", "Lost", "Dropped"}


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _lead_summary(db, user_id: str) -> Dict[str, Any]:
    rows = db.query(Lead.lead_status).filter(Lead.created_by == user_id).all()
    statuses = [row[0] for row in rows]
    return {
        "total": len(statuses),
        "new": statuses.count("New"),
        "contacted": statuses.count("Contacted"),
        "qualified": statuses.count("Qualified"),
    }


def _contact_summary(db, user_id: str) -> Dict[str, Any]:
    count = db.query(sa_func.count(Contact.id)).filter(Contact.created_by == user_id).scalar()
    return {"total": int(count or 0)}


def _account_summary(db, user_id: str) -> Dict[str, Any]:
    rows = db.query(Account.status).filter(Account.created_by == user_id).all()
    statuses = [row[0] for row in rows]
    return {"total": len(statuses), "active": statuses.count("Active")}


def _meeting_summary(db, user_id: str, now: datetime) -> Dict[str, Any]:
    rows = db.query(Meeting.status, Meeting.start_time).filter(Meeting.created_by == user_id).all()
    upcoming = completed = 0
    for status, start_time in rows:
        if status == "cancelled":
            continue
        if _as_utc(start_time) > now:
            upcoming += 1
        elif _as_utc(start_time) < now:
            completed += 1
    return {"total": len(rows), "upcoming": upcoming, "completed": completed}


def _deal_summary(db, user_id: str) -> Dict[str, Any]:
    rows = db.query(Deal.stage, Deal.total_contract_value).filter(Deal.created_by == user_id).all()
    won = [value for stage, value in rows if stage == "Won"]
    return {
        "total": len(rows),
        "won": len(won),
        "totalValue": float(sum(value or 0 for _, value in rows)),
        "wonValue": float(sum(value or 0 for value in won)),
        "active": sum(1 for stage, _ in rows if stage not in CLOSED_DEAL_STAGES),
    }


def _task_summary(db, user_id: str, now: datetime) -> Dict[str, Any]:
    """Tasks the user created or is assigned to; overdue means due before today and not completed."""
    rows = (
        db.query(Task.status, Task.due_date)
        .filter(or_(Task.created_by == user_id, Task.assigned_to == user_id))
        .all()
    )
    statuses = [str(status or "").lower() for status, _ in rows]
    today = now.date()
    overdue = sum(
        1
        for status, due_date in rows
        if due_date is not None and _as_utc(due_date).date() < today and str(status or "").lower() != "completed"
    )
    return {
        "total": len(statuses),
        "open": sum(1 for status in statuses if status not in {"completed", "cancelled"}),
        "completed": statuses.count("completed"),
        "overdue": overdue,
    }


def dashboard_summary(db, user_id: str, cards: List[DashboardCard], now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Counts for the cards the caller may see; hidden cards are never queried."""
    now = now or datetime.now(timezone.utc)
    loaders = {
        "leads": lambda: _lead_summary(db, user_id),
        "contacts": lambda: _contact_summary(db, user_id),
        "accounts": lambda: _account_summary(db, user_id),
        "meetings": lambda: _meeting_summary(db, user_id, now),
        "deals": lambda: _deal_summary(db, user_id),
        "tasks": lambda: _task_summary(db, user_id, now),
    }
    out: List[Dict[str, Any]] = []
    for card in cards:
        loader = loaders.get(card.key)
        if loader is None:
            continue
        out.append({"key": card.key, "title": card.title, "route": card.route, "stats": loader()})
    return out
