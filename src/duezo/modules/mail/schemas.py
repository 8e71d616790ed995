from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class EmailIn(BaseModel):
    message_id: str = Field(min_length=1, max_length=255)
    subject: str = ""
    sender: str = ""
    received_at: datetime | None = None
    body_plain: str | None = None
    body_html: str | None = None


class EmailOut(BaseModel):
    id: uuid.UUID
    source_message_id: str
    subject: str
    sender: str
    received_at: datetime | None
    processed_at: datetime | None
