from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from duezo.core.models import Base, OwnerScoped, Timestamped, UUIDPrimaryKey


class RawEmail(UUIDPrimaryKey, OwnerScoped, Timestamped, Base):
    __tablename__ = "mail_raw_email"
    __table_args__ = (
        UniqueConstraint("owner_id", "source_message_id", name="uq_raw_email_owner_message"),
    )

    source_message_id: Mapped[str] = mapped_column(String(255), index=True)
    subject: Mapped[str] = mapped_column(String(998), default="")
    sender: Mapped[str] = mapped_column(String(320), default="")
    received_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    body_plain: Mapped[str | None] = mapped_column(Text, nullable=True)
    body_html: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
