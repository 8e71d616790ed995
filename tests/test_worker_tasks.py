from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal

from duezo.core.db import SessionLocal
from duezo.modules.bills.service import insert_bill
from duezo.modules.identity.service import create_user
from duezo.modules.mail.service import ingest_email


def test_process_email_task_runs_pipeline():
    from duezo.worker.tasks import process_email_task

    with SessionLocal() as session:
        owner = create_user(session, email="owner@example.com", password="pw")
        email = ingest_email(
            session,
            owner_id=owner.id,
            message_id="msg-1",
            sender="Comcast <billing@comcast.net>",
            subject="Your Comcast bill is ready",
            body_plain="Amount due: $89.45\nDue date: March 15, 2030",
        )
        owner_id, email_id = str(owner.id), str(email.id)

    first = process_email_task.apply(args=[owner_id, email_id]).get()
    second = process_email_task.apply(args=[owner_id, email_id]).get()

    assert first["status"] == "pending"
    assert first["already_processed"] is False
    assert second["already_processed"] is True
    assert second["extraction_id"] == first["extraction_id"]


def test_send_bill_reminders_task_schedules_upcoming_bills():
    from duezo.worker.tasks import send_bill_reminders_task

    with SessionLocal() as session:
        owner = create_user(session, email="owner@example.com", password="pw")
        insert_bill(
            session,
            owner_id=owner.id,
            name="Netflix",
            due_date=datetime.now(UTC).date() + timedelta(days=1),
            amount=Decimal("15.49"),
        )
        session.commit()

    result = send_bill_reminders_task.apply(kwargs={"lookahead_days": 7}).get()
    assert result["owners"] == 1
    assert result["created"] >= 1
    assert result["errors"] == 0
