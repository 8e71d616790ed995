from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from duezo.modules.bills.models import BillCategory, RecurrenceInterval
from duezo.modules.bills.schemas import BillOut
from duezo.modules.extraction.models import ExtractionStatus


class ExtractionCorrections(BaseModel):
    name: str | None = Field(default=None, max_length=200)
    amount: Decimal | None = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    due_date: date | None = None
    category: BillCategory | None = None
    is_recurring: bool | None = None
    recurrence_interval: RecurrenceInterval | None = None
    payment_url: str | None = Field(default=None, max_length=2048)


class ExtractionOut(BaseModel):
    id: uuid.UUID
    email_id: uuid.UUID
    source_message_id: str
    status: ExtractionStatus
    name: str | None
    amount: Decimal | None
    due_date: date | None
    category: BillCategory | None
    is_recurring: bool
    recurrence_interval: RecurrenceInterval | None
    confidence_overall: float
    field_confidences: dict
    confidence_source: str
    payment_url: str | None
    payment_confidence: float
    payment_link_candidates: list
    is_duplicate: bool
    duplicate_reason: str | None
    duplicate_of_bill_id: uuid.UUID | None
    skip_reason: str | None
    created_bill_id: uuid.UUID | None
    reviewed_at: datetime | None
    created_at: datetime


class ConfirmOut(BaseModel):
    extraction: ExtractionOut
    bill: BillOut
    bill_created: bool
