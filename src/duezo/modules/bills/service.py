from __future__ import annotations

import calendar
import re
import uuid
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from duezo.core.db import insert_if_absent
from duezo.core.errors import AuthorizationError, ConflictError, NotFoundError
from duezo.core.logging import get_logger, log_event
from duezo.core.models import utcnow
from duezo.modules.bills.models import (
    Bill,
    BillCategory,
    BillSource,
    IgnoredSuggestion,
    RecurrenceInterval,
)

logger = get_logger(__name__)

_NAME_MAX_EDIT_DISTANCE = 3


def normalize_bill_name(name: str) -> str:
    return re.sub(r"[^a-z0-9]", "", (name or "").lower())


def levenshtein(a: str, b: str) -> int:
    if not a:
        return len(b)
    if not b:
        return len(a)
    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        cur = [i]
        for j, cb in enumerate(b, start=1):
            cur.append(min(prev[j] + 1, cur[j - 1] + 1, prev[j - 1] + (ca != cb)))
        prev = cur
    return prev[-1]


def names_match(a: str, b: str) -> bool:
    na, nb = normalize_bill_name(a), normalize_bill_name(b)
    if not na or not nb:
        return False
    if na in nb or nb in na:
        return True
    return levenshtein(na, nb) <= _NAME_MAX_EDIT_DISTANCE


def amounts_match(a: Decimal | None, b: Decimal | None) -> bool:
    """Amounts agree within one cent or one percent of the stored amount, whichever is larger."""
    if a is None or b is None:
        return True
    tolerance = max(Decimal("0.01"), abs(b) * Decimal("0.01"))
    return abs(a - b) <= tolerance


def get_bill_by_message_id(
    session: Session, *, owner_id: uuid.UUID, message_id: str
) -> Bill | None:
    return session.scalar(
        select(Bill).where(Bill.owner_id == owner_id, Bill.source_message_id == message_id)
    )


def find_fuzzy_duplicate(
    session: Session,
    *,
    owner_id: uuid.UUID,
    name: str | None,
    amount: Decimal | None,
    due_date: date | None,
    window_days: int,
) -> Bill | None:
    if not name or due_date is None:
        return None
    window = timedelta(days=window_days)
    rows = session.scalars(
        select(Bill)
        .where(
            Bill.owner_id == owner_id,
            Bill.is_paid.is_(False),
            Bill.due_date >= due_date - window,
            Bill.due_date <= due_date + window,
        )
        .order_by(Bill.due_date.asc(), Bill.created_at.asc())
    )
    for bill in rows:
        if names_match(name, bill.name) and amounts_match(amount, bill.amount):
            return bill
    return None


def insert_bill(
    session: Session,
    *,
    owner_id: uuid.UUID,
    name: str,
    due_date: date,
    amount: Decimal | None = None,
    category: BillCategory | None = None,
    is_recurring: bool = False,
    recurrence_interval: RecurrenceInterval | None = None,
    source: BillSource = BillSource.MANUAL,
    source_message_id: str | None = None,
    payment_url: str | None = None,
    parent_bill_id: uuid.UUID | None = None,
) -> tuple[Bill, bool]:
    """
    Insert a bill without committing.

    Returns `(bill, created)`. When another writer already stored a bill for the same source
    message, that bill is returned with `created=False`.
    """
    bill = Bill(
        owner_id=owner_id,
        name=name.strip()[:200],
        amount=amount,
        due_date=due_date,
        category=category,
        is_recurring=is_recurring,
        recurrence_interval=recurrence_interval if is_recurring else None,
        source=source,
        source_message_id=source_message_id,
        payment_url=payment_url,
        parent_bill_id=parent_bill_id,
    )
    if insert_if_absent(session, bill):
        return bill, True

    existing = None
    if source_message_id:
        existing = get_bill_by_message_id(session, owner_id=owner_id, message_id=source_message_id)
    if existing is None:
        raise ConflictError("Bill could not be stored")
    log_event(
        logger,
        "bills.insert.exists",
        bill_id=str(existing.id),
        source_message_id=source_message_id,
    )
    return existing, False


def list_bills(session: Session, *, owner_id: uuid.UUID, include_paid: bool = False) -> list[Bill]:
    stmt = select(Bill).where(Bill.owner_id == owner_id)
    if not include_paid:
        stmt = stmt.where(Bill.is_paid.is_(False))
    return list(session.scalars(stmt.order_by(Bill.due_date.asc(), Bill.name.asc())))


def list_unpaid_bills_due_within(
    session: Session, *, owner_id: uuid.UUID, days: int, today: date | None = None
) -> list[Bill]:
    today = today or utcnow().date()
    return list(
        session.scalars(
            select(Bill)
            .where(
                Bill.owner_id == owner_id,
                Bill.is_paid.is_(False),
                Bill.due_date >= today,
                Bill.due_date <= today + timedelta(days=days),
            )
            .order_by(Bill.due_date.asc())
        )
    )


def get_bill_for_owner(session: Session, *, bill_id: uuid.UUID, owner_id: uuid.UUID) -> Bill:
    bill = session.get(Bill, bill_id)
    if not bill:
        raise NotFoundError("Bill not found")
    if bill.owner_id != owner_id:
        raise AuthorizationError()
    return bill


def next_due_date(current: date, interval: RecurrenceInterval) -> date:
    if interval == RecurrenceInterval.WEEKLY:
        return current + timedelta(days=7)
    if interval == RecurrenceInterval.BIWEEKLY:
        return current + timedelta(days=14)
    if interval == RecurrenceInterval.YEARLY:
        day = min(current.day, calendar.monthrange(current.year + 1, current.month)[1])
        return current.replace(year=current.year + 1, day=day)
    year = current.year + (1 if current.month == 12 else 0)
    month = 1 if current.month == 12 else current.month + 1
    return date(year, month, min(current.day, calendar.monthrange(year, month)[1]))


def mark_bill_paid(
    session: Session, *, bill_id: uuid.UUID, owner_id: uuid.UUID
) -> tuple[Bill, Bill | None]:
    """Mark a bill paid; a recurring bill gets its next occurrence created."""
    bill = get_bill_for_owner(session, bill_id=bill_id, owner_id=owner_id)
    if bill.is_paid:
        raise ConflictError("Bill already paid")

    bill.is_paid = True
    bill.paid_at = utcnow()
    session.add(bill)

    next_bill = None
    if bill.is_recurring and bill.recurrence_interval:
        next_bill, _ = insert_bill(
            session,
            owner_id=owner_id,
            name=bill.name,
            amount=bill.amount,
            due_date=next_due_date(bill.due_date, bill.recurrence_interval),
            category=bill.category,
            is_recurring=True,
            recurrence_interval=bill.recurrence_interval,
            source=bill.source,
            payment_url=bill.payment_url,
            parent_bill_id=bill.parent_bill_id or bill.id,
        )
    session.commit()
    log_event(
        logger,
        "bills.paid",
        bill_id=str(bill.id),
        next_bill_id=str(next_bill.id) if next_bill else None,
    )
    return bill, next_bill


def is_ignored(session: Session, *, owner_id: uuid.UUID, message_id: str) -> bool:
    return (
        session.scalar(
            select(IgnoredSuggestion.id).where(
                IgnoredSuggestion.owner_id == owner_id,
                IgnoredSuggestion.source_message_id == message_id,
            )
        )
        is not None
    )


def ignore_suggestion(session: Session, *, owner_id: uuid.UUID, message_id: str) -> bool:
    """Record that the owner dismissed this message. Returns False when it was already ignored."""
    created = insert_if_absent(
        session, IgnoredSuggestion(owner_id=owner_id, source_message_id=message_id)
    )
    if created:
        log_event(logger, "bills.suggestion.ignored", source_message_id=message_id)
    return created


def list_ignored_suggestions(session: Session, *, owner_id: uuid.UUID) -> list[IgnoredSuggestion]:
    return list(
        session.scalars(
            select(IgnoredSuggestion)
            .where(IgnoredSuggestion.owner_id == owner_id)
            .order_by(IgnoredSuggestion.ignored_at.desc())
        )
    )


def restore_suggestion(session: Session, *, owner_id: uuid.UUID, message_id: str) -> bool:
    row = session.scalar(
        select(IgnoredSuggestion).where(
            IgnoredSuggestion.owner_id == owner_id,
            IgnoredSuggestion.source_message_id == message_id,
        )
    )
    if row is None:
        return False
    session.delete(row)
    session.commit()
    return True
