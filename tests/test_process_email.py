from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from duezo.core.config import settings
from duezo.core.db import SessionLocal
from duezo.core.errors import ConflictError, ExternalServiceError, ValidationError
from duezo.modules.bills.models import Bill, BillCategory, BillSource, RecurrenceInterval
from duezo.modules.bills.service import ignore_suggestion, insert_bill
from duezo.modules.extraction import service as extraction_service
from duezo.modules.extraction.models import Extraction, ExtractionStatus
from duezo.modules.identity.service import create_user
from duezo.modules.mail.service import ingest_email

TODAY = date(2026, 3, 1)

COMCAST = {
    "sender": "Comcast <billing@comcast.net>",
    "subject": "Your Comcast bill is ready",
    "body_plain": "Hi Alex, your bill is ready.\nAmount due: $89.45\nDue date: March 15, 2026",
}

PROMO = {
    "sender": "Shop Deals <deals@shop.example.com>",
    "subject": "50% OFF Spring Sale - unsubscribe anytime",
    "body_plain": "Shop now and save up to 50% on everything. Only $19.99!",
}

AI_RESPONSE = {
    "is_bill": True,
    "skip_reason": None,
    "name": "Xfinity",
    "amount": 89.45,
    "due_date": "2026-03-15",
    "category": "internet",
    "is_recurring": True,
    "recurrence_interval": "monthly",
    "payment_url": "https://customer.xfinity.com/pay",
    "confidence": 0.9,
}


def _owner(session, email: str = "owner@example.com"):
    return create_user(session, email=email, password="pw")


def _email(session, owner, message_id: str = "msg-1", **fields):
    return ingest_email(session, owner_id=owner.id, message_id=message_id, **(fields or COMCAST))


def _count(session, model) -> int:
    return int(session.scalar(select(func.count()).select_from(model)) or 0)


def test_bill_email_becomes_pending_extraction():
    with SessionLocal() as session:
        owner = _owner(session)
        email = _email(session, owner)

        result = extraction_service.process_email(
            session, owner_id=owner.id, email=email, today=TODAY
        )

        extraction = result.extraction
        assert result.status == ExtractionStatus.PENDING
        assert result.bill is None
        assert extraction.name == "Xfinity"
        assert extraction.amount == Decimal("89.45")
        assert extraction.due_date == date(2026, 3, 15)
        assert extraction.category == BillCategory.INTERNET
        assert extraction.skip_reason is None
        assert extraction.is_duplicate is False
        assert extraction.confidence_source == "heuristic"
        assert extraction.confidence_overall == min(
            extraction.field_confidences["amount"], extraction.field_confidences["due_date"]
        )
        # no links in the body, so the vendor table supplies the payment page
        assert extraction.payment_url == "https://customer.xfinity.com/#/billing"
        assert extraction.payment_confidence == 0.9
        assert email.processed_at is not None
        assert _count(session, Bill) == 0


def test_promotional_email_is_rejected_without_bill():
    with SessionLocal() as session:
        owner = _owner(session)
        email = _email(session, owner, "promo-1", **PROMO)

        result = extraction_service.process_email(
            session, owner_id=owner.id, email=email, today=TODAY
        )

        assert result.status == ExtractionStatus.REJECTED
        assert result.extraction.skip_reason == "promotional"
        assert result.extraction.confidence_overall == 0.0
        assert email.processed_at is not None
        assert _count(session, Bill) == 0


def test_exact_message_id_match_is_duplicate():
    with SessionLocal() as session:
        owner = _owner(session)
        bill, _ = insert_bill(
            session,
            owner_id=owner.id,
            name="Xfinity",
            due_date=date(2026, 3, 15),
            amount=Decimal("89.45"),
            source=BillSource.EMAIL,
            source_message_id="msg-1",
        )
        session.commit()
        email = _email(session, owner)

        result = extraction_service.process_email(
            session, owner_id=owner.id, email=email, today=TODAY
        )

        assert result.status == ExtractionStatus.DUPLICATE
        assert result.extraction.duplicate_reason == "exact_message_id"
        assert result.extraction.duplicate_of_bill_id == bill.id
        assert _count(session, Bill) == 1


def test_similar_bill_within_window_is_fuzzy_duplicate():
    with SessionLocal() as session:
        owner = _owner(session)
        bill, _ = insert_bill(
            session,
            owner_id=owner.id,
            name="XFINITY",
            due_date=date(2026, 3, 16),
            amount=Decimal("89.45"),
        )
        session.commit()
        email = _email(session, owner)

        result = extraction_service.process_email(
            session, owner_id=owner.id, email=email, today=TODAY
        )

        assert result.status == ExtractionStatus.DUPLICATE
        assert result.extraction.duplicate_reason == "fuzzy_match"
        assert result.extraction.duplicate_of_bill_id == bill.id


def test_bill_outside_window_is_not_duplicate():
    with SessionLocal() as session:
        owner = _owner(session)
        insert_bill(
            session, owner_id=owner.id, name="Xfinity", due_date=date(2026, 2, 15), amount=None
        )
        session.commit()
        email = _email(session, owner)

        result = extraction_service.process_email(
            session, owner_id=owner.id, email=email, today=TODAY
        )
        assert result.status == ExtractionStatus.PENDING


def test_processed_email_short_circuits_unless_forced():
    with SessionLocal() as session:
        owner = _owner(session)
        email = _email(session, owner)

        first = extraction_service.process_email(
            session, owner_id=owner.id, email=email, today=TODAY
        )
        second = extraction_service.process_email(
            session, owner_id=owner.id, email=email, today=TODAY
        )
        assert second.already_processed is True
        assert second.extraction.id == first.extraction.id

        forced = extraction_service.process_email(
            session, owner_id=owner.id, email=email, force_reprocess=True, today=TODAY
        )
        assert forced.already_processed is False
        assert forced.extraction.id == first.extraction.id
        assert _count(session, Extraction) == 1


def test_force_reprocess_overrides_skip():
    with SessionLocal() as session:
        owner = _owner(session)
        email = _email(session, owner, "promo-1", **PROMO)

        rejected = extraction_service.process_email(
            session, owner_id=owner.id, email=email, today=TODAY
        )
        assert rejected.status == ExtractionStatus.REJECTED

        forced = extraction_service.process_email(
            session, owner_id=owner.id, email=email, force_reprocess=True, today=TODAY
        )
        assert forced.extraction.id == rejected.extraction.id
        assert forced.status == ExtractionStatus.PENDING
        assert forced.extraction.skip_reason is None
        assert forced.extraction.amount == Decimal("19.99")
        assert _count(session, Extraction) == 1


def test_ignored_message_is_rejected():
    with SessionLocal() as session:
        owner = _owner(session)
        ignore_suggestion(session, owner_id=owner.id, message_id="msg-1")
        session.commit()
        email = _email(session, owner)

        result = extraction_service.process_email(
            session, owner_id=owner.id, email=email, today=TODAY
        )
        assert result.status == ExtractionStatus.REJECTED
        assert result.extraction.skip_reason == "ignored"


def test_ai_failure_keeps_heuristic_result(monkeypatch):
    monkeypatch.setattr(extraction_service, "bill_ai_available", lambda: True)

    def _fail(_email):
        raise ExternalServiceError("AI request failed")

    monkeypatch.setattr(extraction_service, "request_bill_fields", _fail)

    with SessionLocal() as session:
        owner = _owner(session)
        email = _email(session, owner)
        result = extraction_service.process_email(
            session, owner_id=owner.id, email=email, today=TODAY
        )

        assert result.status == ExtractionStatus.PENDING
        assert result.extraction.amount == Decimal("89.45")
        assert result.extraction.confidence_source == "heuristic"


def test_ai_result_is_merged_and_cached(monkeypatch):
    monkeypatch.setattr(extraction_service, "bill_ai_available", lambda: True)
    calls: list[str] = []

    def _stub(email):
        calls.append(email.id)
        return dict(AI_RESPONSE)

    monkeypatch.setattr(extraction_service, "request_bill_fields", _stub)

    with SessionLocal() as session:
        owner = _owner(session)
        first = extraction_service.process_email(
            session, owner_id=owner.id, email=_email(session, owner, "msg-1"), today=TODAY
        )
        second = extraction_service.process_email(
            session, owner_id=owner.id, email=_email(session, owner, "msg-2"), today=TODAY
        )

        assert len(calls) == 1
        for result in (first, second):
            extraction = result.extraction
            assert extraction.is_recurring is True
            assert extraction.recurrence_interval == RecurrenceInterval.MONTHLY
            assert extraction.payment_url == "https://customer.xfinity.com/pay"
            assert extraction.payment_confidence == 0.9
            assert extraction.confidence_source == "mixed"


def test_auto_accept_creates_bill(monkeypatch):
    monkeypatch.setattr(settings, "auto_accept_threshold", 0.5)

    with SessionLocal() as session:
        owner = _owner(session)
        email = _email(session, owner)
        result = extraction_service.process_email(
            session, owner_id=owner.id, email=email, today=TODAY
        )

        assert result.status == ExtractionStatus.CONFIRMED
        assert result.bill is not None
        assert result.bill.source_message_id == "msg-1"
        assert result.bill.source == BillSource.EMAIL
        assert result.extraction.created_bill_id == result.bill.id
        assert _count(session, Bill) == 1


def test_auto_accept_decided_elsewhere_keeps_extraction_pending(monkeypatch):
    monkeypatch.setattr(settings, "auto_accept_threshold", 0.5)

    def _already_decided(*args, **kwargs):
        raise ConflictError("Extraction already decided")

    monkeypatch.setattr(extraction_service, "confirm_extraction", _already_decided)

    with SessionLocal() as session:
        owner = _owner(session)
        result = extraction_service.process_email(
            session, owner_id=owner.id, email=_email(session, owner), today=TODAY
        )

        assert result.status == ExtractionStatus.PENDING
        assert result.bill is None
        assert _count(session, Bill) == 0


def test_concurrent_bill_for_same_message_is_linked_not_duplicated(monkeypatch):
    monkeypatch.setattr(settings, "auto_accept_threshold", 0.5)

    with SessionLocal() as session:
        owner = _owner(session)
        email = _email(session, owner)

        # Another writer stores the bill after this run's duplicate check.
        monkeypatch.setattr(extraction_service, "get_bill_by_message_id", lambda *a, **k: None)
        monkeypatch.setattr(extraction_service, "find_fuzzy_duplicate", lambda *a, **k: None)
        with SessionLocal() as other:
            existing, _ = insert_bill(
                other,
                owner_id=owner.id,
                name="Xfinity",
                due_date=date(2026, 3, 15),
                source=BillSource.EMAIL,
                source_message_id="msg-1",
            )
            other.commit()
            existing_id = existing.id

        result = extraction_service.process_email(
            session, owner_id=owner.id, email=email, today=TODAY
        )

        assert result.status == ExtractionStatus.CONFIRMED
        assert result.bill.id == existing_id
        assert result.extraction.created_bill_id == existing_id
        assert _count(session, Bill) == 1


def test_batch_counts_outcomes_and_survives_failures(monkeypatch):
    original = extraction_service.preprocess_email

    def _preprocess(body_plain, body_html):
        if body_plain == "boom":
            raise RuntimeError("broken body")
        return original(body_plain, body_html)

    monkeypatch.setattr(extraction_service, "preprocess_email", _preprocess)

    with SessionLocal() as session:
        owner = _owner(session)
        bill_email = _email(session, owner, "msg-1")
        extraction_service.process_email(
            session, owner_id=owner.id, email=bill_email, today=TODAY
        )
        emails = [
            bill_email,
            _email(session, owner, "promo-1", **PROMO),
            _email(session, owner, "broken-1", sender="x@y.com", subject="Bill", body_plain="boom"),
            _email(session, owner, "msg-2", **{**COMCAST, "subject": "Your Xfinity bill"}),
        ]

        summary = extraction_service.process_email_batch(
            session, owner_id=owner.id, emails=emails, today=TODAY
        )

        assert summary.processed == 3
        assert summary.errors == 1
        assert summary.skipped == 2
        assert summary.rejected == 1
        assert summary.pending == 2
        assert len(summary.extraction_ids) == 3


def test_ingest_rejects_blank_message_id_and_empty_email():
    with SessionLocal() as session:
        owner = _owner(session)
        with pytest.raises(ValidationError):
            ingest_email(session, owner_id=owner.id, message_id="  ", subject="Bill")
        with pytest.raises(ValidationError):
            ingest_email(session, owner_id=owner.id, message_id="m-1")


def test_ingest_same_message_twice_returns_stored_row():
    with SessionLocal() as session:
        owner = _owner(session)
        first = _email(session, owner)
        again = _email(session, owner)
        assert again.id == first.id
