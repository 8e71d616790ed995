from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from duezo.core.db import SessionLocal
from duezo.core.errors import ConflictError
from duezo.modules.bills.models import RecurrenceInterval
from duezo.modules.bills.service import (
    amounts_match,
    ignore_suggestion,
    insert_bill,
    is_ignored,
    list_bills,
    mark_bill_paid,
    names_match,
    next_due_date,
    restore_suggestion,
)
from duezo.modules.identity.service import create_user


def test_names_match_tolerates_case_punctuation_and_typos():
    assert names_match("XFINITY", "Xfinity")
    assert names_match("AT&T", "at t")
    assert names_match("Chase", "Chase Sapphire")
    assert names_match("Verizon", "Verizn")
    assert not names_match("Netflix", "Spotify")
    assert not names_match("", "Netflix")


def test_amounts_match_within_tolerance():
    assert amounts_match(Decimal("89.45"), Decimal("89.45"))
    assert amounts_match(Decimal("100.90"), Decimal("100.00"))
    assert not amounts_match(Decimal("102.00"), Decimal("100.00"))
    assert amounts_match(None, Decimal("10.00"))


def test_next_due_date_clamps_month_end():
    assert next_due_date(date(2026, 1, 31), RecurrenceInterval.MONTHLY) == date(2026, 2, 28)
    assert next_due_date(date(2026, 12, 15), RecurrenceInterval.MONTHLY) == date(2027, 1, 15)
    assert next_due_date(date(2028, 2, 29), RecurrenceInterval.YEARLY) == date(2029, 2, 28)
    assert next_due_date(date(2026, 3, 1), RecurrenceInterval.BIWEEKLY) == date(2026, 3, 15)


def test_mark_recurring_bill_paid_creates_next_occurrence():
    with SessionLocal() as session:
        owner = create_user(session, email="owner@example.com", password="pw")
        bill, _ = insert_bill(
            session,
            owner_id=owner.id,
            name="Netflix",
            due_date=date(2026, 3, 10),
            amount=Decimal("15.49"),
            is_recurring=True,
            recurrence_interval=RecurrenceInterval.MONTHLY,
        )
        session.commit()

        paid, next_bill = mark_bill_paid(session, bill_id=bill.id, owner_id=owner.id)

        assert paid.is_paid is True
        assert paid.paid_at is not None
        assert next_bill is not None
        assert next_bill.due_date == date(2026, 4, 10)
        assert next_bill.amount == Decimal("15.49")
        assert next_bill.parent_bill_id == bill.id
        assert [b.id for b in list_bills(session, owner_id=owner.id)] == [next_bill.id]

        with pytest.raises(ConflictError):
            mark_bill_paid(session, bill_id=bill.id, owner_id=owner.id)


def test_ignore_and_restore_suggestion():
    with SessionLocal() as session:
        owner = create_user(session, email="owner@example.com", password="pw")

        assert ignore_suggestion(session, owner_id=owner.id, message_id="m-1") is True
        assert ignore_suggestion(session, owner_id=owner.id, message_id="m-1") is False
        session.commit()
        assert is_ignored(session, owner_id=owner.id, message_id="m-1")

        assert restore_suggestion(session, owner_id=owner.id, message_id="m-1") is True
        assert restore_suggestion(session, owner_id=owner.id, message_id="m-1") is False
        assert not is_ignored(session, owner_id=owner.id, message_id="m-1")
