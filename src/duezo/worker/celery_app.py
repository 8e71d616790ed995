from __future__ import annotations

from celery import Celery
from celery.schedules import crontab

from duezo.core.config import settings


def make_celery() -> Celery:
    app = Celery("duezo", broker=settings.redis_url, backend=settings.redis_url)
    app.conf.update(
        task_always_eager=settings.environment in {"dev", "test"},
        task_eager_propagates=True,
        task_track_started=True,
        beat_schedule={
            "send-bill-reminders": {
                "task": "send_bill_reminders",
                "schedule": crontab(minute=0, hour=settings.reminder_send_hour_utc),
            },
        },
    )
    app.autodiscover_tasks(["duezo.worker.tasks"])
    return app


celery_app = make_celery()
