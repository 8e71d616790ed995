from __future__ import annotations

import os

import pytest

# Set env before any duezo imports (settings/engine are created at import time).
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///./.duezo_test.db")
os.environ.setdefault("BILL_AI_ENABLED", "false")
os.environ["OPENAI_API_KEY"] = ""


@pytest.fixture(autouse=True)
def _reset_db_and_limiter() -> None:
    import duezo.models  # noqa: F401
    from duezo.core import rate_limit
    from duezo.core.db import engine
    from duezo.core.models import Base

    rate_limit._limiter = None

    # Reset DB schema
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)

    yield
