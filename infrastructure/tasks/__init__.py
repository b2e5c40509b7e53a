"""Background execution for refunds and settlement runs.

API handlers and schedulers only see ``TaskDispatcher``; the Celery app and
task modules stay behind it.
"""
from .config.celery import celery_app
from .utils.dispatcher import TaskDispatcher

__all__ = ["celery_app", "TaskDispatcher"]
