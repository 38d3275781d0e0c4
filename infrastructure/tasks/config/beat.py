"""Celery beat schedule configuration.

Keeping the structure close to the Celery docs makes copying snippets
straightforward for new periodic jobs.
"""
from __future__ import annotations

from celery.schedules import crontab

CELERY_BEAT_SCHEDULE = {
    "carts-cleanup-expired": {
        "task": "carts.cleanup_expired",
        "schedule": crontab(minute=15),  # hourly
    },
    "invoices-mark-overdue": {
        "task": "invoices.mark_overdue",
        "schedule": crontab(hour=0, minute=30),  # daily
    },
}
