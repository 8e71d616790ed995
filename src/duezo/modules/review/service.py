from __future__ import annotations

import uuid
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from duezo.core.config import settings
from duezo.core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from duezo.core.logging import get_logger, log_event
from duezo.core.models import utcnow
from duezo.modules.bills.models import Bill, BillCategory, BillSource, RecurrenceInterval
from duezo.modules.bills.service import ignore_suggestion, insert_bill
from duezo.modules.extraction.models import Extraction, ExtractionStatus
from duezo.modules.extraction.payment_links import is_valid_payment_url
from duezo.modules.review.schemas import ExtractionCorrections

logger = get_logger(__name__)

DEFAULT_QUEUE_LIMIT = 50
MAX_QUEUE_LIMIT = 100


@dataclass
class ConfirmResult:
    extraction: Extraction
    bill: Bill
    bill_created: bool


def get_review_queue(
    session: Session, *, owner_id: uuid.UUID, limit: int | None = DEFAULT_QUEUE_LIMIT
) -> list[Extraction]:
    """Pending extractions for the owner, least confident first."""
    limit = DEFAULT_QUEUE_LIMIT if limit is None else limit
    limit = max(1, min(int(limit), MAX_QUEUE_LIMIT))
    return list(
        session.scalars(
            select(Extraction)
            .where(
                Extraction.owner_id == owner_id,
                Extraction.status == ExtractionStatus.PENDING,
            )
            .order_by(Extraction.confidence_overall.asc(), Extraction.created_at.asc())
            .limit(limit)
        )
    )


def get_extraction_for_owner(
    session: Session, *, extraction_id: uuid.UUID, owner_id: uuid.UUID
) -> Extraction:
    extraction = session.get(Extraction, extraction_id)
    if not extraction:
        raise NotFoundError("Extraction not found")
    if extraction.owner_id != owner_id:
        raise AuthorizationError()
    return extraction


def _require_pending(extraction: Extraction) -> None:
    if extraction.status != ExtractionStatus.PENDING:
        raise ConflictError(f"Extraction already {extraction.status.value}")


def _final_fields(extraction: Extraction, corrections: ExtractionCorrections | None) -> dict:
    autofill = extraction.payment_confidence >= settings.payment_url_autofill_threshold
    values = {
        "name": extraction.name,
        "amount": extraction.amount,
        "due_date": extraction.due_date,
        "category": extraction.category,
        "is_recurring": bool(extraction.is_recurring),
        "recurrence_interval": extraction.recurrence_interval,
        "payment_url": extraction.payment_url if autofill else None,
    }
    corrected = corrections.model_dump(exclude_unset=True) if corrections is not None else {}
    values.update(corrected)
    if values["category"] is not None:
        values["category"] = BillCategory(values["category"])
    if values["recurrence_interval"] is not None:
        values["recurrence_interval"] = RecurrenceInterval(values["recurrence_interval"])
    values["is_recurring"] = bool(values["is_recurring"])
    if not values["is_recurring"]:
        values["recurrence_interval"] = None
    elif values["recurrence_interval"] is None:
        values["recurrence_interval"] = RecurrenceInterval.MONTHLY

    payment_url = (values["payment_url"] or "").strip() or None
    if payment_url is not None and not is_valid_payment_url(payment_url):
        if "payment_url" in corrected:
            raise ValidationError("Invalid payment URL")
        payment_url = None
    values["payment_url"] = payment_url

    name = (values["name"] or "").strip()
    if not name:
        raise ValidationError("Bill name is required")
    if values["due_date"] is None:
        raise ValidationError("Bill due date is required")
    values["name"] = name
    return values


def confirm_extraction(
    session: Session,
    *,
    owner_id: uuid.UUID,
    extraction_id: uuid.UUID,
    corrections: ExtractionCorrections | None = None,
) -> ConfirmResult:
    """
    Turn a pending extraction into a bill.

    Corrections override the extracted values field by field. The status flip is a
    conditional update, so a second confirmation racing this one fails with ConflictError and
    its bill insert is rolled back.
    """
    extraction = get_extraction_for_owner(session, extraction_id=extraction_id, owner_id=owner_id)
    _require_pending(extraction)
    values = _final_fields(extraction, corrections)

    bill, created = insert_bill(
        session,
        owner_id=owner_id,
        source=BillSource.EMAIL,
        source_message_id=extraction.source_message_id,
        **values,
    )

    result = session.execute(
        update(Extraction)
        .where(Extraction.id == extraction.id, Extraction.status == ExtractionStatus.PENDING)
        .values(
            status=ExtractionStatus.CONFIRMED,
            created_bill_id=bill.id,
            reviewed_at=utcnow(),
            name=values["name"],
            amount=values["amount"],
            due_date=values["due_date"],
        )
    )
    if result.rowcount != 1:
        session.rollback()
        raise ConflictError("Extraction already decided")
    session.commit()
    session.refresh(extraction)
    session.refresh(bill)

    log_event(
        logger,
        "review.confirmed",
        extraction_id=str(extraction.id),
        bill_id=str(bill.id),
        bill_created=created,
        corrected=sorted(corrections.model_dump(exclude_unset=True)) if corrections else None,
    )
    return ConfirmResult(extraction=extraction, bill=bill, bill_created=created)


def reject_extraction(
    session: Session, *, owner_id: uuid.UUID, extraction_id: uuid.UUID
) -> Extraction:
    extraction = get_extraction_for_owner(session, extraction_id=extraction_id, owner_id=owner_id)
    _require_pending(extraction)

    result = session.execute(
        update(Extraction)
        .where(Extraction.id == extraction.id, Extraction.status == ExtractionStatus.PENDING)
        .values(status=ExtractionStatus.REJECTED, reviewed_at=utcnow())
    )
    if result.rowcount != 1:
        session.rollback()
        raise ConflictError("Extraction already decided")
    ignore_suggestion(session, owner_id=owner_id, message_id=extraction.source_message_id)
    session.commit()
    session.refresh(extraction)

    log_event(logger, "review.rejected", extraction_id=str(extraction.id))
    return extraction
