"""Periodic vendor settlement tasks"""
from __future__ import annotations

import asyncio

from celery import shared_task

from core.logging_config import get_logger
from infrastructure.services import worker_services

from ..utils.base_task import BaseTask

logger = get_logger(__name__)


@shared_task(name="settlements.process", bind=True, base=BaseTask)
def process_settlements(self, include_failed: bool = False) -> dict:
    """Settle every captured, unsettled vendor payment."""

    async def _run():
        async with worker_services() as services:
            return await services.settlements.process_settlements(include_failed=include_failed)

    summary = asyncio.run(_run())
    logger.info(
        "settlement_task_finished",
        selected=summary.selected,
        processed=summary.processed,
        failed=summary.failed,
        skipped=summary.skipped,
        errors=summary.errors,
    )
    return summary.model_dump(mode="json", exclude={"settlements"})
