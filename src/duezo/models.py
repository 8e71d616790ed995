"""
Alembic model import hook.

Importing this module ensures all SQLAlchemy models are registered on Base.metadata.
"""

from __future__ import annotations

# Import User first - every other table carries an owner_id foreign key to it
from duezo.modules.identity.models import User  # noqa: F401

from duezo.modules.bills.models import Bill, IgnoredSuggestion  # noqa: F401
from duezo.modules.extraction.models import Extraction, ExtractionAICache  # noqa: F401
from duezo.modules.mail.models import RawEmail  # noqa: F401
from duezo.modules.notifications.models import NotificationQueueEntry  # noqa: F401
