from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import Date, DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from duezo.core.models import Base, OwnerScoped, Timestamped, UUIDPrimaryKey


class NotificationQueueEntry(UUIDPrimaryKey, OwnerScoped, Timestamped, Base):
    __tablename__ = "notifications_queue_entry"
    __table_args__ = (
        UniqueConstraint(
            "owner_id", "bill_id", "channel", "scheduled_date", name="uq_notification_slot"
        ),
    )

    bill_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("bills_bill.id"), index=True
    )
    channel: Mapped[str] = mapped_column(String(20), default="in_app")
    scheduled_date: Mapped[date] = mapped_column(Date, index=True)
    scheduled_for: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    lead_days: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(20), default="queued")
    message: Mapped[str] = mapped_column(String(500), default="")
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
