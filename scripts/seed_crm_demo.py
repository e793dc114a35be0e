#!/usr/bin/env python3
from __future__ import annotations

import argparse
from datetime import datetime, timedelta, timezone

from crm_shared import issue_auth_session_token
from repository.meetings_repo import create_meeting
from services.audit_log import write_audit_event
from shared.db import Account, Contact, Deal, Lead, SessionLocal, Task, User, UserRole, init_db


def _at(days_offset: int, hour: int) -> datetime:
    day = datetime.now(timezone.utc) + timedelta(days=days_offset)
    return day.replace(hour=hour, minute=0, second=0, microsecond=0)


def seed(owner_email: str, role: str) -> None:
    init_db()
    db = SessionLocal()
    try:
        owner = db.query(User).filter_by(email=owner_email).one_or_none()
        if owner is None:
            owner = User(email=owner_email, full_name="Demo Owner")
            db.add(owner)
            db.flush()
        if owner.role is None:
            db.add(UserRole(user_id=owner.id, role=role))

        lead = Lead(
            lead_name="John Buyer",
            email="john.buyer@example.com",
            company_name="Acme Labs",
            lead_status="Contacted",
            created_by=owner.id,
        )
        contact = Contact(
            contact_name="Maria Ops",
            email="maria.ops@example.com",
            company_name="Acme Labs",
            position="Operations Lead",
            created_by=owner.id,
        )
        db.add_all([lead, contact])
        db.add(Account(account_name="Acme Labs", status="Active", created_by=owner.id))
        db.add(Deal(deal_name="Acme annual plan", stage="Won", total_contract_value=12000, created_by=owner.id))
        db.add(Task(title="Send proposal", status="open", assigned_to=owner.id, created_by=owner.id, due_date=_at(2, 9)))
        db.flush()

        meeting = create_meeting(
            db,
            {
                "subject": "Discovery call",
                "description": "Intro call with Acme Labs",
                "start_time": _at(1, 10),
                "end_time": _at(1, 11),
                "lead_id": lead.id,
                "contact_id": contact.id,
                "status": "scheduled",
            },
            owner.id,
        )
        db.commit()
        write_audit_event(
            action="SEED_CREATED",
            resource_type="meeting",
            resource_id=meeting.id,
            user_id=owner.id,
            details={"source": "seed_crm_demo"},
        )
        token, expires_at = issue_auth_session_token(owner_email, user_id=owner.id)
    finally:
        db.close()

    print(f"Seeded CRM demo data for {owner_email}")
    if token:
        print(f"Session token (expires {expires_at}): {token}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed CRM demo data")
    parser.add_argument("--owner-email", required=True, help="Email of the demo user")
    parser.add_argument("--role", default="admin", choices=["admin", "manager", "user"], help="Role for the demo user")
    args = parser.parse_args()
    seed(args.owner_email.strip().lower(), args.role)


if __name__ == "__main__":
    main()
