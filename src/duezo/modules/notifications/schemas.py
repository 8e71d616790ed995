from __future__ import annotations

import uuid
from datetime import date, datetime

from pydantic import BaseModel, Field


class ScheduleRemindersIn(BaseModel):
    lookahead_days: int | None = Field(default=None, ge=0, le=60)


class ScheduleResultOut(BaseModel):
    created: int
    skipped: int


class NotificationOut(BaseModel):
    id: uuid.UUID
    bill_id: uuid.UUID
    channel: str
    scheduled_date: date
    scheduled_for: datetime
    lead_days: int
    status: str
    message: str
    sent_at: datetime | None
    read_at: datetime | None
