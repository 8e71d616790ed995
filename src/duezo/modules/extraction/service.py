from __future__ import annotations

import enum
import hashlib
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from duezo.core.config import settings
from duezo.core.db import insert_if_absent
from duezo.core.errors import ConflictError, ExternalServiceError
from duezo.core.logging import get_logger, log_event, log_exception, logged_operation
from duezo.modules.bills.models import Bill, BillCategory, RecurrenceInterval
from duezo.modules.bills.service import find_fuzzy_duplicate, get_bill_by_message_id, is_ignored
from duezo.modules.extraction.ai import (
    SCHEMA_VERSION,
    AIBillCandidate,
    AIEmailInput,
    bill_ai_available,
    parse_bill_fields,
    request_bill_fields,
)
from duezo.modules.extraction.candidates import (
    CandidateSet,
    extract_amount_candidates,
    extract_candidates,
    extract_date_candidates,
    extract_name_candidates,
)
from duezo.modules.extraction.merge import ExtractedFields, combine
from duezo.modules.extraction.models import Extraction, ExtractionAICache, ExtractionStatus
from duezo.modules.extraction.payment_links import (
    extract_payment_link_candidates,
    is_valid_payment_url,
    resolve_payment_url,
)
from duezo.modules.extraction.preprocess import preprocess_email
from duezo.modules.mail.models import RawEmail
from duezo.modules.mail.service import mark_processed
from duezo.modules.review.service import confirm_extraction

logger = get_logger(__name__)

SKIP_IGNORED = "ignored"
DUPLICATE_EXACT = "exact_message_id"
DUPLICATE_FUZZY = "fuzzy_match"


@dataclass
class ProcessEmailResult:
    extraction: Extraction
    already_processed: bool = False
    bill: Bill | None = None

    @property
    def status(self) -> ExtractionStatus:
        return self.extraction.status


@dataclass
class BatchScanResult:
    processed: int = 0
    skipped: int = 0
    errors: int = 0
    pending: int = 0
    duplicate: int = 0
    rejected: int = 0
    confirmed: int = 0
    extraction_ids: list[uuid.UUID] = field(default_factory=list)


def _as_enum(enum_cls: type[enum.Enum], value: Any) -> Any:
    if value is None:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        return None


def get_extraction_for_email(
    session: Session, *, owner_id: uuid.UUID, email_id: uuid.UUID
) -> Extraction | None:
    return session.scalar(
        select(Extraction).where(Extraction.owner_id == owner_id, Extraction.email_id == email_id)
    )


def _upsert_extraction(
    session: Session, *, owner_id: uuid.UUID, email: RawEmail, values: dict[str, Any]
) -> Extraction:
    existing = get_extraction_for_email(session, owner_id=owner_id, email_id=email.id)
    if existing is None:
        candidate = Extraction(
            owner_id=owner_id,
            email_id=email.id,
            source_message_id=email.source_message_id,
            **values,
        )
        if insert_if_absent(session, candidate):
            return candidate
        existing = get_extraction_for_email(session, owner_id=owner_id, email_id=email.id)
        if existing is None:
            raise ConflictError("Extraction could not be stored")

    for key, value in values.items():
        setattr(existing, key, value)
    session.add(existing)
    session.flush()
    return existing


def _email_text_hash(email: RawEmail, cleaned: str) -> str:
    text = f"{email.sender}\n{email.subject}\n{cleaned}"
    return hashlib.sha256(text.encode("utf-8", errors="ignore")).hexdigest()


def _get_cached_bill_ai(session: Session, *, text_hash: str) -> dict | None:
    cached = session.scalar(
        select(ExtractionAICache).where(ExtractionAICache.text_hash == text_hash)
    )
    if not cached:
        return None
    if cached.schema_version != SCHEMA_VERSION:
        return None
    if not isinstance(cached.response_json, dict):
        return None
    return cached.response_json


def _upsert_bill_ai_cache(session: Session, *, text_hash: str, response_json: dict) -> None:
    cached = session.scalar(
        select(ExtractionAICache).where(ExtractionAICache.text_hash == text_hash)
    )
    if not cached:
        candidate = ExtractionAICache(
            text_hash=text_hash,
            provider="openai",
            model=str(settings.openai_model or ""),
            schema_version=SCHEMA_VERSION,
            response_json=response_json,
        )
        try:
            with session.begin_nested():
                session.add(candidate)
                session.flush()
            return
        except IntegrityError:
            cached = session.scalar(
                select(ExtractionAICache).where(ExtractionAICache.text_hash == text_hash)
            )
            if not cached:
                return
    cached.provider = "openai"
    cached.model = str(settings.openai_model or "")
    cached.schema_version = SCHEMA_VERSION
    cached.response_json = response_json
    session.add(cached)
    session.flush()


def _run_ai(session: Session, *, email: RawEmail, cleaned: str) -> AIBillCandidate | None:
    """AI pass for a single email. Failures degrade to None so the heuristic result stands."""
    if not bill_ai_available():
        return None

    source_id = str(email.id)
    text_hash = _email_text_hash(email, cleaned)
    cached = _get_cached_bill_ai(session, text_hash=text_hash)
    if cached is not None:
        log_event(logger, "extraction.ai.cache_hit", email_id=source_id, text_hash=text_hash)
        return parse_bill_fields(cached, source_id=source_id)

    ai_input = AIEmailInput(id=source_id, sender=email.sender, subject=email.subject, body=cleaned)
    try:
        obj = request_bill_fields(ai_input)
    except ExternalServiceError as e:
        log_event(
            logger,
            "extraction.ai.failed",
            level=logging.WARNING,
            email_id=source_id,
            error=str(e.detail),
        )
        return None
    if obj is None:
        return None
    _upsert_bill_ai_cache(session, text_hash=text_hash, response_json=obj)
    return parse_bill_fields(obj, source_id=source_id)


def _fill_skipped_candidates(
    candidates: CandidateSet, *, email: RawEmail, cleaned: str, today: date
) -> None:
    # Early skips return before amounts/dates/names are scanned.
    full_text = f"{email.subject}\n{cleaned}"
    if not candidates.amounts:
        candidates.amounts = extract_amount_candidates(full_text)
    if not candidates.dates:
        candidates.dates = extract_date_candidates(full_text, today=today)
    if not candidates.names:
        candidates.names = extract_name_candidates(email.sender, email.subject, cleaned)


def _resolve_payment(
    fields: ExtractedFields, ai: AIBillCandidate | None, body_html: str | None
) -> tuple[str | None, float, list[dict[str, Any]]]:
    link_candidates = extract_payment_link_candidates(body_html)
    serialized = [
        {"url": c.url, "anchor_text": c.anchor_text, "score": c.score, "domain": c.domain}
        for c in link_candidates
    ]
    if ai is not None and ai.payment_url and is_valid_payment_url(ai.payment_url):
        return ai.payment_url, round(ai.confidence, 3), serialized
    url, confidence = resolve_payment_url(link_candidates, fields.name)
    return url, round(confidence, 3), serialized


def _field_values(fields: ExtractedFields, confidence: float) -> dict[str, Any]:
    return {
        "name": fields.name[:200] if fields.name else None,
        "amount": fields.amount,
        "due_date": fields.due_date,
        "category": _as_enum(BillCategory, fields.category),
        "is_recurring": bool(fields.is_recurring),
        "recurrence_interval": _as_enum(RecurrenceInterval, fields.recurrence_interval),
        "confidence_overall": confidence,
        "field_confidences": dict(fields.field_confidences),
        "confidence_source": fields.confidence_source,
    }


def _store_rejected(
    session: Session,
    *,
    owner_id: uuid.UUID,
    email: RawEmail,
    skip_reason: str,
    candidates: CandidateSet | None,
) -> Extraction:
    fields, confidence = combine(candidates, None) if candidates else (ExtractedFields(), 0.0)
    values = _field_values(fields, confidence)
    values.update(
        status=ExtractionStatus.REJECTED,
        skip_reason=skip_reason,
        is_duplicate=False,
        duplicate_reason=None,
        duplicate_of_bill_id=None,
        payment_url=None,
        payment_confidence=0.0,
        payment_link_candidates=[],
    )
    extraction = _upsert_extraction(session, owner_id=owner_id, email=email, values=values)
    mark_processed(session, email=email)
    session.commit()
    return extraction


def process_email(
    session: Session,
    *,
    owner_id: uuid.UUID,
    email: RawEmail,
    skip_ai: bool = False,
    force_reprocess: bool = False,
    today: date | None = None,
) -> ProcessEmailResult:
    """
    Run one stored email through the bill pipeline and persist its Extraction.

    A processed email returns its existing Extraction untouched unless `force_reprocess` is
    set, in which case the row is overwritten in place. Promotional and other skipped emails
    are stored as rejected with a `skip_reason`. Exact and fuzzy matches against existing
    bills are stored as duplicates. An AI failure leaves the heuristic result in place;
    database errors propagate.
    """
    today = today or date.today()
    with logged_operation(
        logger,
        "extraction.process",
        email_id=str(email.id),
        message_id=email.source_message_id,
        force_reprocess=force_reprocess,
    ) as outcome:
        existing = get_extraction_for_email(session, owner_id=owner_id, email_id=email.id)
        if email.processed_at is not None and existing is not None and not force_reprocess:
            outcome.update(status=existing.status.value, already_processed=True)
            return ProcessEmailResult(extraction=existing, already_processed=True)

        if not force_reprocess and is_ignored(
            session, owner_id=owner_id, message_id=email.source_message_id
        ):
            extraction = _store_rejected(
                session, owner_id=owner_id, email=email, skip_reason=SKIP_IGNORED, candidates=None
            )
            outcome.update(status=extraction.status.value, skip_reason=SKIP_IGNORED)
            return ProcessEmailResult(extraction=extraction)

        cleaned = preprocess_email(email.body_plain, email.body_html)
        candidates = extract_candidates(email.sender, email.subject, cleaned, today=today)

        if candidates.skip_reason:
            if not force_reprocess:
                extraction = _store_rejected(
                    session,
                    owner_id=owner_id,
                    email=email,
                    skip_reason=candidates.skip_reason,
                    candidates=candidates,
                )
                outcome.update(
                    status=extraction.status.value,
                    skip_reason=candidates.skip_reason,
                    promotional_score=candidates.promotional_score,
                )
                return ProcessEmailResult(extraction=extraction)
            log_event(
                logger,
                "extraction.skip_overridden",
                email_id=str(email.id),
                skip_reason=candidates.skip_reason,
            )
            _fill_skipped_candidates(candidates, email=email, cleaned=cleaned, today=today)

        ai = None if skip_ai else _run_ai(session, email=email, cleaned=cleaned)
        fields, confidence = combine(candidates, ai)
        payment_url, payment_confidence, link_candidates = _resolve_payment(
            fields, ai, email.body_html
        )

        status = ExtractionStatus.PENDING
        duplicate_reason = None
        duplicate_of = get_bill_by_message_id(
            session, owner_id=owner_id, message_id=email.source_message_id
        )
        if duplicate_of is not None:
            duplicate_reason = DUPLICATE_EXACT
        else:
            duplicate_of = find_fuzzy_duplicate(
                session,
                owner_id=owner_id,
                name=fields.name,
                amount=fields.amount,
                due_date=fields.due_date,
                window_days=settings.fuzzy_due_date_window_days,
            )
            if duplicate_of is not None:
                duplicate_reason = DUPLICATE_FUZZY
        if duplicate_of is not None:
            status = ExtractionStatus.DUPLICATE

        values = _field_values(fields, confidence)
        values.update(
            status=status,
            skip_reason=None,
            is_duplicate=duplicate_of is not None,
            duplicate_reason=duplicate_reason,
            duplicate_of_bill_id=duplicate_of.id if duplicate_of else None,
            payment_url=payment_url,
            payment_confidence=payment_confidence,
            payment_link_candidates=link_candidates,
        )
        extraction = _upsert_extraction(session, owner_id=owner_id, email=email, values=values)
        mark_processed(session, email=email)
        session.commit()

        result = ProcessEmailResult(extraction=extraction)
        threshold = settings.auto_accept_threshold
        if (
            status == ExtractionStatus.PENDING
            and threshold is not None
            and confidence >= threshold
            and fields.name
            and fields.due_date
        ):
            try:
                confirmed = confirm_extraction(
                    session, owner_id=owner_id, extraction_id=extraction.id
                )
            except ConflictError:
                # Someone else decided this extraction first.
                session.rollback()
                session.refresh(extraction)
            else:
                result = ProcessEmailResult(extraction=confirmed.extraction, bill=confirmed.bill)
                outcome["auto_accepted"] = True

        outcome.update(
            status=result.extraction.status.value,
            confidence=confidence,
            confidence_source=fields.confidence_source,
            duplicate_reason=duplicate_reason,
            ai_used=ai is not None,
        )
        return result


def process_email_batch(
    session: Session,
    *,
    owner_id: uuid.UUID,
    emails: list[RawEmail],
    skip_ai: bool = False,
    force_reprocess: bool = False,
    today: date | None = None,
) -> BatchScanResult:
    """Process emails one by one; a failing email is logged and counted, never fatal."""
    summary = BatchScanResult()
    for email in emails:
        try:
            result = process_email(
                session,
                owner_id=owner_id,
                email=email,
                skip_ai=skip_ai,
                force_reprocess=force_reprocess,
                today=today,
            )
        except Exception:
            session.rollback()
            log_exception(logger, "extraction.batch.item_failed", email_id=str(email.id))
            summary.errors += 1
            continue

        summary.processed += 1
        summary.extraction_ids.append(result.extraction.id)
        if result.already_processed or result.extraction.skip_reason:
            summary.skipped += 1
        status = result.extraction.status
        if status == ExtractionStatus.PENDING:
            summary.pending += 1
        elif status == ExtractionStatus.DUPLICATE:
            summary.duplicate += 1
        elif status == ExtractionStatus.REJECTED:
            summary.rejected += 1
        elif status == ExtractionStatus.CONFIRMED:
            summary.confirmed += 1

    log_event(
        logger,
        "extraction.batch.finish",
        processed=summary.processed,
        skipped=summary.skipped,
        errors=summary.errors,
        pending=summary.pending,
        duplicate=summary.duplicate,
        rejected=summary.rejected,
        confirmed=summary.confirmed,
    )
    return summary
