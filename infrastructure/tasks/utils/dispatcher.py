"""Small dispatching helpers to decouple Celery from callers."""
from __future__ import annotations

from typing import Any, Dict

from ..config.celery import celery_app


class TaskDispatcher:
    """Internal facade used by application layer to schedule tasks."""

    def enqueue_refund_execution(self, refund_id: int) -> None:
        """Fire-and-forget gateway submission for a freshly created refund."""
        celery_app.send_task("payments.execute_refund", kwargs={"refund_id": refund_id})

    def run_settlements(self, include_failed: bool = False) -> None:
        celery_app.send_task("settlements.process", kwargs={"include_failed": include_failed})

    def enqueue(self, task_name: str, *, args: tuple | None = None, kwargs: Dict[str, Any] | None = None) -> None:
        """Generic escape hatch for scheduling arbitrary tasks by name."""
        celery_app.send_task(task_name, args=args or (), kwargs=kwargs or {})
