from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from duezo.api.deps import get_current_user
from duezo.core.db import db_session
from duezo.core.errors import NotFoundError
from duezo.modules.bills.schemas import (
    BillOut,
    IgnoredSuggestionOut,
    IgnoreSuggestionIn,
    MarkPaidOut,
)
from duezo.modules.bills.service import (
    ignore_suggestion,
    list_bills,
    list_ignored_suggestions,
    mark_bill_paid,
    restore_suggestion,
)
from duezo.modules.identity.models import User

router = APIRouter(tags=["bills"])


@router.get("/bills", response_model=list[BillOut])
def list_bills_endpoint(
    include_paid: bool = False,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[BillOut]:
    bills = list_bills(session, owner_id=user.id, include_paid=include_paid)
    return [BillOut.model_validate(b, from_attributes=True) for b in bills]


@router.post("/bills/{bill_id}/paid", response_model=MarkPaidOut)
def mark_paid_endpoint(
    bill_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> MarkPaidOut:
    bill, next_bill = mark_bill_paid(session, bill_id=bill_id, owner_id=user.id)
    return MarkPaidOut(
        bill=BillOut.model_validate(bill, from_attributes=True),
        next_bill=BillOut.model_validate(next_bill, from_attributes=True) if next_bill else None,
    )


@router.get("/suggestions/ignore", response_model=list[IgnoredSuggestionOut])
def list_ignored_endpoint(
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[IgnoredSuggestionOut]:
    rows = list_ignored_suggestions(session, owner_id=user.id)
    return [IgnoredSuggestionOut.model_validate(r, from_attributes=True) for r in rows]


@router.post("/suggestions/ignore")
def ignore_endpoint(
    payload: IgnoreSuggestionIn,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> dict:
    created = ignore_suggestion(session, owner_id=user.id, message_id=payload.message_id)
    session.commit()
    return {"message_id": payload.message_id, "created": created}


@router.delete("/suggestions/ignore/{message_id}")
def restore_endpoint(
    message_id: str,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> Response:
    if not restore_suggestion(session, owner_id=user.id, message_id=message_id):
        raise NotFoundError("Suggestion is not ignored")
    return Response(status_code=204)
