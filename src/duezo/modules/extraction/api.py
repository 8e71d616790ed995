from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from duezo.api.deps import enforce_rate_limit, get_current_user
from duezo.core.db import db_session
from duezo.core.errors import ExternalServiceError, ValidationError
from duezo.modules.bills.schemas import BillOut
from duezo.modules.extraction.ai import (
    MAX_AI_BATCH_SIZE,
    AIEmailInput,
    bill_ai_available,
    extract_bills,
)
from duezo.modules.extraction.schemas import (
    AIBillOut,
    AIParseIn,
    BatchScanIn,
    BatchScanOut,
    ProcessEmailOut,
)
from duezo.modules.extraction.service import process_email, process_email_batch
from duezo.modules.identity.models import User
from duezo.modules.mail.schemas import EmailIn
from duezo.modules.mail.service import ingest_email
from duezo.modules.review.schemas import ExtractionOut

router = APIRouter(tags=["extraction"])


@router.post("/extraction/process-email", response_model=ProcessEmailOut)
def process_email_endpoint(
    payload: EmailIn,
    skip_ai: bool = False,
    force_reprocess: bool = False,
    session: Session = Depends(db_session),
    user: User = Depends(enforce_rate_limit),
) -> ProcessEmailOut:
    email = ingest_email(session, owner_id=user.id, **payload.model_dump())
    result = process_email(
        session,
        owner_id=user.id,
        email=email,
        skip_ai=skip_ai,
        force_reprocess=force_reprocess,
    )
    return ProcessEmailOut(
        extraction=ExtractionOut.model_validate(result.extraction, from_attributes=True),
        already_processed=result.already_processed,
        bill=BillOut.model_validate(result.bill, from_attributes=True) if result.bill else None,
    )


@router.post("/extraction/process-batch", response_model=BatchScanOut)
def process_batch_endpoint(
    payload: BatchScanIn,
    skip_ai: bool = False,
    force_reprocess: bool = False,
    session: Session = Depends(db_session),
    user: User = Depends(enforce_rate_limit),
) -> BatchScanOut:
    emails = [ingest_email(session, owner_id=user.id, **e.model_dump()) for e in payload.emails]
    summary = process_email_batch(
        session,
        owner_id=user.id,
        emails=emails,
        skip_ai=skip_ai,
        force_reprocess=force_reprocess,
    )
    return BatchScanOut(**asdict(summary))


@router.post("/extraction/ai-parse", response_model=list[AIBillOut])
def ai_parse_endpoint(
    payload: AIParseIn,
    user: User = Depends(get_current_user),
) -> list[AIBillOut]:
    if len(payload.emails) > MAX_AI_BATCH_SIZE:
        raise ValidationError(f"At most {MAX_AI_BATCH_SIZE} emails per request")
    if not bill_ai_available():
        raise ExternalServiceError("AI extraction is not configured")
    inputs = [
        AIEmailInput(id=e.id, sender=e.sender, subject=e.subject, body=e.body)
        for e in payload.emails
    ]
    candidates = extract_bills(inputs)
    return [AIBillOut.model_validate(c, from_attributes=True) for c in candidates]
