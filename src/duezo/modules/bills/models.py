from __future__ import annotations

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Numeric,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from duezo.core.models import Base, OwnerScoped, Timestamped, UUIDPrimaryKey, utcnow


class BillCategory(str, enum.Enum):
    UTILITIES = "utilities"
    SUBSCRIPTION = "subscription"
    RENT = "rent"
    HOUSING = "housing"
    INSURANCE = "insurance"
    PHONE = "phone"
    INTERNET = "internet"
    CREDIT_CARD = "credit_card"
    LOAN = "loan"
    HEALTH = "health"
    OTHER = "other"


class RecurrenceInterval(str, enum.Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class BillSource(str, enum.Enum):
    EMAIL = "email"
    MANUAL = "manual"


class Bill(UUIDPrimaryKey, OwnerScoped, Timestamped, Base):
    __tablename__ = "bills_bill"
    __table_args__ = (
        UniqueConstraint("owner_id", "source_message_id", name="uq_bill_owner_message"),
    )

    name: Mapped[str] = mapped_column(String(200))
    amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    due_date: Mapped[date] = mapped_column(Date, index=True)
    category: Mapped[BillCategory | None] = mapped_column(
        Enum(BillCategory, native_enum=False), nullable=True
    )
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False)
    recurrence_interval: Mapped[RecurrenceInterval | None] = mapped_column(
        Enum(RecurrenceInterval, native_enum=False), nullable=True
    )
    source: Mapped[BillSource] = mapped_column(
        Enum(BillSource, native_enum=False), default=BillSource.MANUAL
    )
    source_message_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payment_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)

    is_paid: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    parent_bill_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("bills_bill.id"), nullable=True
    )


class IgnoredSuggestion(UUIDPrimaryKey, OwnerScoped, Base):
    __tablename__ = "bills_ignored_suggestion"
    __table_args__ = (
        UniqueConstraint("owner_id", "source_message_id", name="uq_ignored_owner_message"),
    )

    source_message_id: Mapped[str] = mapped_column(String(255))
    ignored_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
