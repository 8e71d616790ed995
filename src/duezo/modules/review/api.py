from __future__ import annotations

import uuid

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from duezo.api.deps import get_current_user
from duezo.core.db import db_session
from duezo.modules.bills.schemas import BillOut
from duezo.modules.identity.models import User
from duezo.modules.review.schemas import ConfirmOut, ExtractionCorrections, ExtractionOut
from duezo.modules.review.service import (
    DEFAULT_QUEUE_LIMIT,
    confirm_extraction,
    get_review_queue,
    reject_extraction,
)

router = APIRouter(tags=["review"])


@router.get("/extraction/review-queue", response_model=list[ExtractionOut])
def review_queue_endpoint(
    limit: int = Query(default=DEFAULT_QUEUE_LIMIT),
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[ExtractionOut]:
    rows = get_review_queue(session, owner_id=user.id, limit=limit)
    return [ExtractionOut.model_validate(r, from_attributes=True) for r in rows]


@router.post("/extraction/{extraction_id}/confirm", response_model=ConfirmOut)
def confirm_endpoint(
    extraction_id: uuid.UUID,
    corrections: ExtractionCorrections | None = Body(default=None),
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ConfirmOut:
    result = confirm_extraction(
        session, owner_id=user.id, extraction_id=extraction_id, corrections=corrections
    )
    return ConfirmOut(
        extraction=ExtractionOut.model_validate(result.extraction, from_attributes=True),
        bill=BillOut.model_validate(result.bill, from_attributes=True),
        bill_created=result.bill_created,
    )


@router.post("/extraction/{extraction_id}/reject", response_model=ExtractionOut)
def reject_endpoint(
    extraction_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ExtractionOut:
    extraction = reject_extraction(session, owner_id=user.id, extraction_id=extraction_id)
    return ExtractionOut.model_validate(extraction, from_attributes=True)
