from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from duezo.core.db import SessionLocal
from duezo.core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from duezo.modules.bills.models import Bill, BillCategory, IgnoredSuggestion, RecurrenceInterval
from duezo.modules.bills.service import mark_bill_paid
from duezo.modules.extraction.models import Extraction, ExtractionStatus
from duezo.modules.identity.service import create_user
from duezo.modules.mail.service import ingest_email
from duezo.modules.review import service as review_service
from duezo.modules.review.schemas import ExtractionCorrections


def _owner(session, email: str = "owner@example.com"):
    return create_user(session, email=email, password="pw")


def _pending(session, owner, message_id: str, *, confidence: float = 0.5, **values) -> Extraction:
    email = ingest_email(
        session, owner_id=owner.id, message_id=message_id, subject="Bill", body_plain="due"
    )
    fields = {
        "name": "Xfinity",
        "amount": Decimal("89.45"),
        "due_date": date(2026, 3, 15),
        "category": BillCategory.INTERNET,
        "payment_url": "https://customer.xfinity.com/pay",
        "payment_confidence": 0.9,
        **values,
    }
    extraction = Extraction(
        owner_id=owner.id,
        email_id=email.id,
        source_message_id=message_id,
        status=ExtractionStatus.PENDING,
        confidence_overall=confidence,
        **fields,
    )
    session.add(extraction)
    session.commit()
    return extraction


def _count(session, model) -> int:
    return int(session.scalar(select(func.count()).select_from(model)) or 0)


def test_queue_is_ordered_by_confidence_and_clamped():
    with SessionLocal() as session:
        owner = _owner(session)
        other = _owner(session, "other@example.com")
        high = _pending(session, owner, "m-high", confidence=0.9)
        low = _pending(session, owner, "m-low", confidence=0.2)
        mid = _pending(session, owner, "m-mid", confidence=0.5)
        _pending(session, other, "m-other", confidence=0.1)
        decided = _pending(session, owner, "m-decided", confidence=0.05)
        review_service.reject_extraction(session, owner_id=owner.id, extraction_id=decided.id)

        queue = review_service.get_review_queue(session, owner_id=owner.id)
        assert [e.id for e in queue] == [low.id, mid.id, high.id]

        assert len(review_service.get_review_queue(session, owner_id=owner.id, limit=2)) == 2
        assert len(review_service.get_review_queue(session, owner_id=owner.id, limit=0)) == 1
        assert len(review_service.get_review_queue(session, owner_id=owner.id, limit=500)) == 3


def test_confirm_creates_bill_once():
    with SessionLocal() as session:
        owner = _owner(session)
        extraction = _pending(session, owner, "m-1")

        result = review_service.confirm_extraction(
            session, owner_id=owner.id, extraction_id=extraction.id
        )

        assert result.bill_created is True
        assert result.extraction.status == ExtractionStatus.CONFIRMED
        assert result.extraction.created_bill_id == result.bill.id
        assert result.extraction.reviewed_at is not None
        assert result.bill.name == "Xfinity"
        assert result.bill.source_message_id == "m-1"
        assert result.bill.payment_url == "https://customer.xfinity.com/pay"

        with pytest.raises(ConflictError):
            review_service.confirm_extraction(
                session, owner_id=owner.id, extraction_id=extraction.id
            )
        with pytest.raises(ConflictError):
            review_service.reject_extraction(
                session, owner_id=owner.id, extraction_id=extraction.id
            )
        assert _count(session, Bill) == 1


def test_confirm_applies_corrections():
    with SessionLocal() as session:
        owner = _owner(session)
        extraction = _pending(session, owner, "m-1")

        corrections = ExtractionCorrections(
            name="Comcast Internet",
            amount=Decimal("91.00"),
            is_recurring=True,
            recurrence_interval="monthly",
        )
        result = review_service.confirm_extraction(
            session, owner_id=owner.id, extraction_id=extraction.id, corrections=corrections
        )

        assert result.bill.name == "Comcast Internet"
        assert result.bill.amount == Decimal("91.00")
        assert result.bill.due_date == date(2026, 3, 15)
        assert result.bill.is_recurring is True
        assert result.extraction.name == "Comcast Internet"
        assert result.extraction.amount == Decimal("91.00")


def test_low_confidence_payment_url_is_not_copied_to_bill():
    with SessionLocal() as session:
        owner = _owner(session)
        extraction = _pending(session, owner, "m-1", payment_confidence=0.4)

        result = review_service.confirm_extraction(
            session, owner_id=owner.id, extraction_id=extraction.id
        )
        assert result.bill.payment_url is None


def test_confirm_rejects_unsafe_payment_url_correction():
    with SessionLocal() as session:
        owner = _owner(session)
        extraction = _pending(session, owner, "m-1")

        for url in ("javascript:alert(1)", "http://customer.xfinity.com/pay"):
            with pytest.raises(ValidationError):
                review_service.confirm_extraction(
                    session,
                    owner_id=owner.id,
                    extraction_id=extraction.id,
                    corrections=ExtractionCorrections(payment_url=url),
                )

        assert _count(session, Bill) == 0
        session.refresh(extraction)
        assert extraction.status == ExtractionStatus.PENDING

        result = review_service.confirm_extraction(
            session,
            owner_id=owner.id,
            extraction_id=extraction.id,
            corrections=ExtractionCorrections(payment_url="https://www.xfinity.com/pay-bill"),
        )
        assert result.bill.payment_url == "https://www.xfinity.com/pay-bill"


def test_recurring_correction_without_interval_defaults_to_monthly():
    with SessionLocal() as session:
        owner = _owner(session)
        extraction = _pending(session, owner, "m-1")

        result = review_service.confirm_extraction(
            session,
            owner_id=owner.id,
            extraction_id=extraction.id,
            corrections=ExtractionCorrections(is_recurring=True),
        )
        assert result.bill.is_recurring is True
        assert result.bill.recurrence_interval == RecurrenceInterval.MONTHLY

        _, next_bill = mark_bill_paid(session, bill_id=result.bill.id, owner_id=owner.id)
        assert next_bill is not None
        assert next_bill.due_date == date(2026, 4, 15)


def test_confirm_requires_name_and_due_date():
    with SessionLocal() as session:
        owner = _owner(session)
        extraction = _pending(session, owner, "m-1", due_date=None)

        with pytest.raises(ValidationError):
            review_service.confirm_extraction(
                session, owner_id=owner.id, extraction_id=extraction.id
            )

        result = review_service.confirm_extraction(
            session,
            owner_id=owner.id,
            extraction_id=extraction.id,
            corrections=ExtractionCorrections(due_date=date(2026, 4, 1)),
        )
        assert result.bill.due_date == date(2026, 4, 1)


def test_reject_records_ignored_suggestion():
    with SessionLocal() as session:
        owner = _owner(session)
        extraction = _pending(session, owner, "m-1")

        rejected = review_service.reject_extraction(
            session, owner_id=owner.id, extraction_id=extraction.id
        )

        assert rejected.status == ExtractionStatus.REJECTED
        assert rejected.reviewed_at is not None
        ignored = session.scalars(select(IgnoredSuggestion)).all()
        assert [i.source_message_id for i in ignored] == ["m-1"]
        assert _count(session, Bill) == 0


def test_review_is_owner_scoped():
    with SessionLocal() as session:
        owner = _owner(session)
        intruder = _owner(session, "intruder@example.com")
        extraction = _pending(session, owner, "m-1")

        with pytest.raises(AuthorizationError):
            review_service.confirm_extraction(
                session, owner_id=intruder.id, extraction_id=extraction.id
            )
        with pytest.raises(NotFoundError):
            review_service.reject_extraction(
                session, owner_id=owner.id, extraction_id=owner.id
            )


def test_second_session_confirming_same_extraction_loses():
    with SessionLocal() as session:
        owner = _owner(session)
        extraction = _pending(session, owner, "m-1")
        owner_id, extraction_id = owner.id, extraction.id

    with SessionLocal() as first, SessionLocal() as second:
        # Both reviewers load the pending row before either decides.
        assert first.get(Extraction, extraction_id).status == ExtractionStatus.PENDING
        assert second.get(Extraction, extraction_id).status == ExtractionStatus.PENDING

        winner = review_service.confirm_extraction(
            first, owner_id=owner_id, extraction_id=extraction_id
        )
        with pytest.raises(ConflictError):
            review_service.confirm_extraction(
                second, owner_id=owner_id, extraction_id=extraction_id
            )

        assert _count(first, Bill) == 1
        assert first.get(Extraction, extraction_id).created_bill_id == winner.bill.id
