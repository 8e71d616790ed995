from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field

from duezo.modules.bills.schemas import BillOut
from duezo.modules.mail.schemas import EmailIn
from duezo.modules.review.schemas import ExtractionOut


class ProcessEmailOut(BaseModel):
    extraction: ExtractionOut
    already_processed: bool = False
    bill: BillOut | None = None


class BatchScanIn(BaseModel):
    emails: list[EmailIn] = Field(min_length=1, max_length=200)


class BatchScanOut(BaseModel):
    processed: int
    skipped: int
    errors: int
    pending: int
    duplicate: int
    rejected: int
    confirmed: int
    extraction_ids: list[uuid.UUID]


class AIEmailIn(BaseModel):
    id: str = Field(min_length=1, max_length=255)
    sender: str = ""
    subject: str = ""
    body: str = ""


class AIParseIn(BaseModel):
    emails: list[AIEmailIn] = Field(min_length=1)


class AIBillOut(BaseModel):
    source_id: str
    name: str | None
    amount: Decimal | None
    due_date: date | None
    category: str | None
    is_recurring: bool
    recurrence_interval: str | None
    payment_url: str | None
    confidence: float
