"""Celery beat schedule configuration.

Keeping the structure close to the Celery docs makes copying snippets
straightforward for new periodic jobs.
"""
from __future__ import annotations

from core.settings import payment_settings

CELERY_BEAT_SCHEDULE = {
    "settlements-process": {
        "task": "settlements.process",
        "schedule": payment_settings.settlement.schedule_seconds,
        "kwargs": {"include_failed": False},
    },
}
