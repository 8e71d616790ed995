from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from duezo.core.config import settings
from duezo.core.db import insert_if_absent
from duezo.core.errors import AuthorizationError, NotFoundError
from duezo.core.logging import get_logger, log_event, log_exception
from duezo.core.models import utcnow
from duezo.modules.bills.models import Bill
from duezo.modules.bills.service import list_unpaid_bills_due_within
from duezo.modules.notifications.models import NotificationQueueEntry

logger = get_logger(__name__)

CHANNEL_IN_APP = "in_app"
STATUS_SENT = "sent"


@dataclass
class ScheduleResult:
    created: int = 0
    skipped: int = 0
    entry_ids: list[uuid.UUID] = field(default_factory=list)


@dataclass
class ReminderRunResult:
    owners: int = 0
    created: int = 0
    skipped: int = 0
    errors: int = 0


def reminder_message(bill: Bill, days_until_due: int) -> str:
    parts = [bill.name]
    if bill.amount is not None:
        parts.append(f"${bill.amount:.2f}")
    if days_until_due <= 0:
        parts.append("due today")
    elif days_until_due == 1:
        parts.append("due tomorrow")
    else:
        parts.append(f"due in {days_until_due} days")
    return " ".join(parts)


def schedule_reminders(
    session: Session,
    *,
    owner_id: uuid.UUID,
    bills: Iterable[Bill],
    now: datetime | None = None,
    lead_days: list[int] | None = None,
) -> ScheduleResult:
    """
    Create in-app reminder entries for each bill and lead time.

    Entries are keyed by (owner, bill, channel, scheduled date); a slot that already exists is
    counted as skipped, so running this repeatedly for the same day never duplicates
    reminders. In-app entries are delivered as soon as they exist, hence `status="sent"`.
    """
    now = now or utcnow()
    today = now.date()
    leads = sorted(set(lead_days or settings.reminder_lead_days), reverse=True)
    send_at = time(hour=settings.reminder_send_hour_utc, tzinfo=UTC)
    result = ScheduleResult()

    for bill in bills:
        if bill.owner_id != owner_id or bill.is_paid:
            continue
        for lead in leads:
            remind_on = bill.due_date - timedelta(days=lead)
            if remind_on < today:
                continue
            entry = NotificationQueueEntry(
                owner_id=owner_id,
                bill_id=bill.id,
                channel=CHANNEL_IN_APP,
                scheduled_date=remind_on,
                scheduled_for=datetime.combine(remind_on, send_at),
                lead_days=lead,
                status=STATUS_SENT,
                sent_at=now,
                message=reminder_message(bill, lead),
            )
            if insert_if_absent(session, entry):
                result.created += 1
                result.entry_ids.append(entry.id)
            else:
                result.skipped += 1

    session.commit()
    log_event(
        logger,
        "notifications.scheduled",
        created=result.created,
        skipped=result.skipped,
    )
    return result


def send_bill_reminders(
    session: Session,
    *,
    lookahead_days: int | None = None,
    now: datetime | None = None,
) -> ReminderRunResult:
    """Schedule reminders for every owner with unpaid bills due inside the lookahead window."""
    now = now or utcnow()
    today: date = now.date()
    days = settings.reminder_lookahead_days if lookahead_days is None else lookahead_days
    owner_ids = list(
        session.scalars(
            select(Bill.owner_id)
            .where(
                Bill.is_paid.is_(False),
                Bill.due_date >= today,
                Bill.due_date <= today + timedelta(days=days),
            )
            .distinct()
        )
    )

    run = ReminderRunResult()
    for owner_id in owner_ids:
        try:
            bills = list_unpaid_bills_due_within(
                session, owner_id=owner_id, days=days, today=today
            )
            result = schedule_reminders(session, owner_id=owner_id, bills=bills, now=now)
        except Exception:
            session.rollback()
            log_exception(logger, "notifications.owner_failed", owner=str(owner_id))
            run.errors += 1
            continue
        run.owners += 1
        run.created += result.created
        run.skipped += result.skipped

    log_event(
        logger,
        "notifications.run.finish",
        owners=run.owners,
        created=run.created,
        skipped=run.skipped,
        errors=run.errors,
    )
    return run


def list_notifications(
    session: Session, *, owner_id: uuid.UUID, unread_only: bool = False
) -> list[NotificationQueueEntry]:
    stmt = select(NotificationQueueEntry).where(NotificationQueueEntry.owner_id == owner_id)
    if unread_only:
        stmt = stmt.where(NotificationQueueEntry.read_at.is_(None))
    return list(session.scalars(stmt.order_by(NotificationQueueEntry.scheduled_for.desc())))


def mark_notification_read(
    session: Session, *, owner_id: uuid.UUID, entry_id: uuid.UUID
) -> NotificationQueueEntry:
    entry = session.get(NotificationQueueEntry, entry_id)
    if not entry:
        raise NotFoundError("Notification not found")
    if entry.owner_id != owner_id:
        raise AuthorizationError()
    if entry.read_at is None:
        entry.read_at = utcnow()
        session.add(entry)
        session.commit()
    return entry
