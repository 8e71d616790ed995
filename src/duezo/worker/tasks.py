from __future__ import annotations

# Ensure all models are registered before any task runs
# isort: off
import duezo.models  # noqa: F401
# isort: on

import uuid
from typing import Any

from duezo.core.db import SessionLocal
from duezo.core.logging import get_logger, logged_operation, reset_task_context, set_task_context
from duezo.modules.mail.service import get_email_for_owner
from duezo.worker.celery_app import celery_app

logger = get_logger(__name__)


@celery_app.task(name="process_email", bind=True)
def process_email_task(
    self,
    owner_id: str,
    email_id: str,
    skip_ai: bool = False,
    force_reprocess: bool = False,
) -> dict[str, Any]:
    from duezo.modules.extraction.service import process_email

    token = set_task_context(getattr(self.request, "id", None))
    try:
        with logged_operation(
            logger, "celery.task", task_name="process_email", email_id=email_id
        ) as outcome, SessionLocal() as session:
            owner = uuid.UUID(owner_id)
            email = get_email_for_owner(session, email_id=uuid.UUID(email_id), owner_id=owner)
            result = process_email(
                session,
                owner_id=owner,
                email=email,
                skip_ai=skip_ai,
                force_reprocess=force_reprocess,
            )
            outcome["status"] = result.status.value
            return {
                "extraction_id": str(result.extraction.id),
                "status": result.status.value,
                "already_processed": result.already_processed,
            }
    finally:
        reset_task_context(token)


@celery_app.task(name="send_bill_reminders", bind=True)
def send_bill_reminders_task(self, lookahead_days: int | None = None) -> dict[str, int]:
    from duezo.modules.notifications.service import send_bill_reminders

    token = set_task_context(getattr(self.request, "id", None))
    try:
        with logged_operation(
            logger, "celery.task", task_name="send_bill_reminders"
        ) as outcome, SessionLocal() as session:
            run = send_bill_reminders(session, lookahead_days=lookahead_days)
            outcome.update(created=run.created, skipped=run.skipped, errors=run.errors)
            return {
                "owners": run.owners,
                "created": run.created,
                "skipped": run.skipped,
                "errors": run.errors,
            }
    finally:
        reset_task_context(token)
