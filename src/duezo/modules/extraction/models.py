from __future__ import annotations

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from duezo.core.models import Base, OwnerScoped, Timestamped, UUIDPrimaryKey
from duezo.modules.bills.models import BillCategory, RecurrenceInterval


class ExtractionStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    DUPLICATE = "duplicate"


class Extraction(UUIDPrimaryKey, OwnerScoped, Timestamped, Base):
    __tablename__ = "extraction_extraction"
    __table_args__ = (UniqueConstraint("owner_id", "email_id", name="uq_extraction_owner_email"),)

    email_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("mail_raw_email.id"), index=True
    )
    source_message_id: Mapped[str] = mapped_column(String(255), index=True)
    status: Mapped[ExtractionStatus] = mapped_column(
        Enum(ExtractionStatus, native_enum=False), default=ExtractionStatus.PENDING, index=True
    )

    name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    category: Mapped[BillCategory | None] = mapped_column(
        Enum(BillCategory, native_enum=False), nullable=True
    )
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False)
    recurrence_interval: Mapped[RecurrenceInterval | None] = mapped_column(
        Enum(RecurrenceInterval, native_enum=False), nullable=True
    )

    confidence_overall: Mapped[float] = mapped_column(Float, default=0.0, index=True)
    field_confidences: Mapped[dict] = mapped_column(JSON, default=dict)
    confidence_source: Mapped[str] = mapped_column(String(20), default="heuristic")

    payment_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    payment_confidence: Mapped[float] = mapped_column(Float, default=0.0)
    payment_link_candidates: Mapped[list] = mapped_column(JSON, default=list)

    is_duplicate: Mapped[bool] = mapped_column(Boolean, default=False)
    duplicate_reason: Mapped[str | None] = mapped_column(String(50), nullable=True)
    duplicate_of_bill_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("bills_bill.id"), nullable=True
    )
    skip_reason: Mapped[str | None] = mapped_column(String(50), nullable=True)

    created_bill_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("bills_bill.id"), nullable=True
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class ExtractionAICache(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "extraction_ai_cache"

    text_hash: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    provider: Mapped[str] = mapped_column(String(50), default="openai")
    model: Mapped[str] = mapped_column(String(100), default="")
    schema_version: Mapped[int] = mapped_column(Integer, default=1)
    response_json: Mapped[dict] = mapped_column(JSON, default=dict)
