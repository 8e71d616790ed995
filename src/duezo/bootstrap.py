from __future__ import annotations

from sqlalchemy import select

import duezo.models  # noqa: F401
from duezo.core.config import settings
from duezo.core.db import SessionLocal, engine
from duezo.core.logging import get_logger, log_event
from duezo.core.models import Base
from duezo.core.security import hash_password
from duezo.modules.identity.models import User

logger = get_logger(__name__)


def bootstrap() -> None:
    if settings.environment in {"dev", "test"} and str(settings.database_url).startswith("sqlite"):
        Base.metadata.create_all(engine)

    if not settings.init_user_email or not settings.init_user_password:
        return

    # Support comma-separated list of seed users
    emails = [e.strip().lower() for e in settings.init_user_email.split(",") if e.strip()]

    with SessionLocal() as session:
        for email in emails:
            if session.scalar(select(User).where(User.email == email)):
                continue
            session.add(
                User(
                    email=email,
                    full_name=None,
                    password_hash=hash_password(settings.init_user_password),
                    is_active=True,
                )
            )
            log_event(logger, "bootstrap.user.created", email=email)
        session.commit()
