from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import joinedload

from services.errors import MeetingValidationError, NotFound
from services.meeting_times import to_iso_z, validate_range
from shared.db import Contact, Lead, Meeting


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; stored values are always UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def display_status(meeting: Meeting, now: Optional[datetime] = None) -> str:
    if meeting.status == "cancelled":
        return "cancelled"
    now = _as_utc(now) or datetime.now(timezone.utc)
    if _as_utc(meeting.start_time) < now:
        return "completed"
    return "scheduled"


def meeting_to_dict(meeting: Meeting, now: Optional[datetime] = None) -> Dict[str, Any]:
    return {
        "id": meeting.id,
        "subject": meeting.subject,
        "description": meeting.description,
        "start_time": to_iso_z(_as_utc(meeting.start_time)),
        "end_time": to_iso_z(_as_utc(meeting.end_time)),
        "join_url": meeting.join_url,
        "lead_id": meeting.lead_id,
        "contact_id": meeting.contact_id,
        "lead_name": meeting.lead.lead_name if meeting.lead else None,
        "contact_name": meeting.contact.contact_name if meeting.contact else None,
        "status": meeting.status,
        "display_status": display_status(meeting, now),
        "created_by": meeting.created_by,
        "created_at": meeting.created_at.isoformat() if meeting.created_at else None,
    }


def _check_links(db, lead_id: Optional[str], contact_id: Optional[str]) -> None:
    if lead_id and not db.query(Lead.id).filter(Lead.id == lead_id).first():
        raise MeetingValidationError("Linked lead does not exist")
    if contact_id and not db.query(Contact.id).filter(Contact.id == contact_id).first():
        raise MeetingValidationError("Linked contact does not exist")


def get_meeting(db, meeting_id: str) -> Meeting:
    meeting = db.query(Meeting).filter(Meeting.id == meeting_id).one_or_none()
    if meeting is None:
        raise NotFound("Meeting not found")
    return meeting


def create_meeting(db, data: Dict[str, Any], created_by: Optional[str]) -> Meeting:
    validate_range(_as_utc(data["start_time"]), _as_utc(data["end_time"]))
    _check_links(db, data.get("lead_id"), data.get("contact_id"))
    meeting = Meeting(
        subject=data["subject"],
        description=data.get("description"),
        start_time=_as_utc(data["start_time"]),
        end_time=_as_utc(data["end_time"]),
        join_url=data.get("join_url"),
        lead_id=data.get("lead_id"),
        contact_id=data.get("contact_id"),
        status=data.get("status") or "scheduled",
        created_by=created_by,
    )
    db.add(meeting)
    db.flush()
    return meeting


def update_meeting(db, meeting_id: str, data: Dict[str, Any]) -> Meeting:
    meeting = get_meeting(db, meeting_id)
    start = _as_utc(data.get("start_time")) or _as_utc(meeting.start_time)
    end = _as_utc(data.get("end_time")) or _as_utc(meeting.end_time)
    validate_range(start, end)
    _check_links(db, data.get("lead_id"), data.get("contact_id"))
    for field in ("subject", "description", "join_url", "lead_id", "contact_id", "status"):
        if field in data:
            setattr(meeting, field, data[field])
    meeting.start_time = start
    meeting.end_time = end
    db.flush()
    return meeting


def set_join_url(db, meeting_id: str, join_url: str) -> Meeting:
    meeting = get_meeting(db, meeting_id)
    meeting.join_url = join_url
    db.flush()
    return meeting


def delete_meeting(db, meeting_id: str) -> bool:
    deleted = db.query(Meeting).filter(Meeting.id == meeting_id).delete(synchronize_session=False)
    return bool(deleted)


def list_meetings(
    db,
    *,
    search: Optional[str] = None,
    created_by: Optional[str] = None,
    limit: int = 200,
) -> List[Meeting]:
    query = (
        db.query(Meeting)
        .outerjoin(Lead, Meeting.lead_id == Lead.id)
        .outerjoin(Contact, Meeting.contact_id == Contact.id)
        .options(joinedload(Meeting.lead), joinedload(Meeting.contact))
    )
    if created_by:
        query = query.filter(Meeting.created_by == created_by)
    term = str(search or "").strip().lower()
    if term:
        like = f"%{term}%"
        query = query.filter(
            or_(
                Meeting.subject.ilike(like),
                Lead.lead_name.ilike(like),
                Contact.contact_name.ilike(like),
            )
        )
    return query.order_by(Meeting.start_time.asc()).limit(max(1, min(500, int(limit or 200)))).all()
