from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from duezo.modules.bills.models import BillCategory, BillSource, RecurrenceInterval


class BillOut(BaseModel):
    id: uuid.UUID
    name: str
    amount: Decimal | None
    due_date: date
    category: BillCategory | None
    is_recurring: bool
    recurrence_interval: RecurrenceInterval | None
    source: BillSource
    source_message_id: str | None
    payment_url: str | None
    is_paid: bool
    paid_at: datetime | None
    parent_bill_id: uuid.UUID | None


class MarkPaidOut(BaseModel):
    bill: BillOut
    next_bill: BillOut | None = None


class IgnoreSuggestionIn(BaseModel):
    message_id: str = Field(min_length=1, max_length=255)


class IgnoredSuggestionOut(BaseModel):
    source_message_id: str
    ignored_at: datetime
