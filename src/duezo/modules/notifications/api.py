from __future__ import annotations

import uuid

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from duezo.api.deps import get_current_user
from duezo.core.config import settings
from duezo.core.db import db_session
from duezo.modules.bills.service import list_unpaid_bills_due_within
from duezo.modules.identity.models import User
from duezo.modules.notifications.schemas import (
    NotificationOut,
    ScheduleRemindersIn,
    ScheduleResultOut,
)
from duezo.modules.notifications.service import (
    list_notifications,
    mark_notification_read,
    schedule_reminders,
)

router = APIRouter(tags=["notifications"])


@router.post("/notifications/reminders", response_model=ScheduleResultOut)
def schedule_reminders_endpoint(
    payload: ScheduleRemindersIn | None = Body(default=None),
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ScheduleResultOut:
    days = payload.lookahead_days if payload and payload.lookahead_days is not None else None
    bills = list_unpaid_bills_due_within(
        session,
        owner_id=user.id,
        days=settings.reminder_lookahead_days if days is None else days,
    )
    result = schedule_reminders(session, owner_id=user.id, bills=bills)
    return ScheduleResultOut(created=result.created, skipped=result.skipped)


@router.get("/notifications", response_model=list[NotificationOut])
def list_notifications_endpoint(
    unread_only: bool = False,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[NotificationOut]:
    rows = list_notifications(session, owner_id=user.id, unread_only=unread_only)
    return [NotificationOut.model_validate(r, from_attributes=True) for r in rows]


@router.post("/notifications/{entry_id}/read", response_model=NotificationOut)
def mark_read_endpoint(
    entry_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> NotificationOut:
    entry = mark_notification_read(session, owner_id=user.id, entry_id=entry_id)
    return NotificationOut.model_validate(entry, from_attributes=True)
