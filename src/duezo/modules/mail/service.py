from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from duezo.core.db import insert_if_absent
from duezo.core.errors import AuthorizationError, NotFoundError, ValidationError
from duezo.core.models import utcnow
from duezo.modules.mail.models import RawEmail


def get_email(session: Session, *, owner_id: uuid.UUID, message_id: str) -> RawEmail | None:
    return session.scalar(
        select(RawEmail).where(
            RawEmail.owner_id == owner_id, RawEmail.source_message_id == message_id
        )
    )


def get_email_for_owner(session: Session, *, email_id: uuid.UUID, owner_id: uuid.UUID) -> RawEmail:
    email = session.get(RawEmail, email_id)
    if not email:
        raise NotFoundError("Email not found")
    if email.owner_id != owner_id:
        raise AuthorizationError()
    return email


def ingest_email(
    session: Session,
    *,
    owner_id: uuid.UUID,
    message_id: str,
    subject: str = "",
    sender: str = "",
    received_at: datetime | None = None,
    body_plain: str | None = None,
    body_html: str | None = None,
) -> RawEmail:
    """
    Store an inbound email once per (owner, message id).

    A second delivery of the same message returns the stored row; bodies are only filled in
    when the stored copy had none.
    """
    message_id = (message_id or "").strip()
    if not message_id:
        raise ValidationError("Email message id is required")
    if not (body_plain or body_html or subject):
        raise ValidationError("Email has no subject or body")

    existing = get_email(session, owner_id=owner_id, message_id=message_id)
    if existing is None:
        candidate = RawEmail(
            owner_id=owner_id,
            source_message_id=message_id,
            subject=subject or "",
            sender=sender or "",
            received_at=received_at,
            body_plain=body_plain,
            body_html=body_html,
        )
        if insert_if_absent(session, candidate):
            session.commit()
            return candidate
        existing = get_email(session, owner_id=owner_id, message_id=message_id)
        if existing is None:
            raise NotFoundError("Email not found")

    changed = False
    if body_plain and not existing.body_plain:
        existing.body_plain = body_plain
        changed = True
    if body_html and not existing.body_html:
        existing.body_html = body_html
        changed = True
    if changed:
        session.add(existing)
        session.commit()
    return existing


def mark_processed(session: Session, *, email: RawEmail) -> None:
    email.processed_at = utcnow()
    session.add(email)
    session.flush()
