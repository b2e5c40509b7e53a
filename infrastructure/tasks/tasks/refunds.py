"""Refund execution tasks"""
from __future__ import annotations

import asyncio

from celery import shared_task

from core.logging_config import get_logger
from infrastructure.external.payments.exceptions import PaymentRecoverableError
from infrastructure.services import worker_services

from ..utils.base_task import BaseTask

logger = get_logger(__name__)


@shared_task(
    name="payments.execute_refund",
    bind=True,
    base=BaseTask,
    autoretry_for=(PaymentRecoverableError,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    retry_kwargs={"max_retries": 5},
)
def execute_refund(self, refund_id: int) -> dict:
    """Submit a pending refund to the gateway.

    Re-running for a refund that is no longer pending is a no-op, so redelivery
    after a lost ack is safe.
    """

    async def _run():
        async with worker_services() as services:
            return await services.payments.execute_refund(refund_id)

    refund = asyncio.run(_run())
    logger.info("refund_task_finished", refund_id=refund_id, status=refund.status)
    return {"refund_id": refund.id, "status": refund.status}
