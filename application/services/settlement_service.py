"""
Application service converting captured payments into vendor payouts.

Runs as a periodic batch (Celery beat) and on operator request. Each payment
is settled in its own Unit of Work; the unique constraint on
``vendor_settlements.payment_id`` decides concurrent runs.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from application.dtos.settlements import SettlementDTO, SettlementRunSummary
from application.ports.payout import PayoutProvider, PayoutRequest, PayoutResult
from application.services.payment_service import idempotency_key
from core.logging_config import get_logger
from domain.common.exceptions import SettlementAlreadyExistsException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.settlement.entity import SettlementStatus, VendorSettlement


logger = get_logger(__name__)


class _Outcome(str, Enum):
    PROCESSED = "processed"
    FAILED = "failed"
    SKIPPED = "skipped"


class SettlementService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        payout_provider: PayoutProvider,
        *,
        default_payout_method: str = "bank_transfer",
        batch_size: int = 100,
        payout_timeout: float = 10.0,
    ) -> None:
        self._uow_factory = uow_factory
        self.payout_provider = payout_provider
        self.default_payout_method = default_payout_method
        self.batch_size = batch_size
        self.payout_timeout = payout_timeout

    async def process_settlements(self, include_failed: bool = False) -> SettlementRunSummary:
        """
        Settle every captured, unsettled standalone/child payment (up to batch_size).

        Payout failures are recorded on the settlement row; errors on a single
        payment are logged and the batch continues. Nothing is raised.
        """
        async with self._uow_factory(readonly=True) as uow:
            candidates = await uow.payment_repository.list_needing_settlement(
                limit=self.batch_size, include_failed=include_failed
            )
            payment_ids = [p.id for p in candidates]

        summary = SettlementRunSummary(selected=len(payment_ids))
        logger.info("settlement_run_started", selected=len(payment_ids), include_failed=include_failed)

        for payment_id in payment_ids:
            try:
                outcome, settlement = await self._settle_payment(payment_id, include_failed)
            except Exception as exc:  # one bad payment never stops the batch
                summary.errors += 1
                logger.exception("settlement_error", payment_id=payment_id, error=str(exc))
                continue

            if outcome == _Outcome.PROCESSED:
                summary.processed += 1
            elif outcome == _Outcome.FAILED:
                summary.failed += 1
            else:
                summary.skipped += 1
            if settlement is not None:
                summary.settlements.append(SettlementDTO.from_entity(settlement))

        logger.info(
            "settlement_run_finished",
            processed=summary.processed,
            failed=summary.failed,
            skipped=summary.skipped,
            errors=summary.errors,
        )
        return summary

    async def _settle_payment(
        self, payment_id: int, include_failed: bool
    ) -> tuple[_Outcome, Optional[VendorSettlement]]:
        async with self._uow_factory() as uow:
            payment = await uow.payment_repository.get_for_update(payment_id)
            if payment is None or not payment.is_settleable or payment.vendor_id is None:
                logger.info("settlement_skipped", payment_id=payment_id, reason="not_eligible")
                return _Outcome.SKIPPED, None

            vendor = await uow.vendor_repository.get_by_id(payment.vendor_id)
            method = (vendor.preferred_payout_method if vendor else None) or self.default_payout_method

            existing = await uow.settlement_repository.get_by_payment_id(payment.id)
            if existing is not None:
                if not (include_failed and existing.status == SettlementStatus.FAILED):
                    logger.info("settlement_skipped", payment_id=payment_id, reason="already_settled")
                    return _Outcome.SKIPPED, None
                existing.reset_for_retry(method)
                settlement = await uow.settlement_repository.update(existing)
            else:
                now = datetime.now(timezone.utc)
                try:
                    settlement = await uow.settlement_repository.create(VendorSettlement(
                        id=None,
                        vendor_id=payment.vendor_id,
                        payment_id=payment.id,
                        amount=payment.calculate_vendor_amount(),
                        currency=payment.currency,
                        method=method,
                        status=SettlementStatus.PENDING,
                        created_at=now,
                        updated_at=now,
                    ))
                except SettlementAlreadyExistsException:
                    logger.info("settlement_skipped", payment_id=payment_id, reason="concurrent_settlement")
                    return _Outcome.SKIPPED, None

            req = PayoutRequest(
                settlement_id=settlement.id,
                vendor_id=settlement.vendor_id,
                amount=settlement.amount,
                currency=settlement.currency,
                method=settlement.method,
                destination=vendor.payout_account if vendor else None,
                idempotency_key=idempotency_key(
                    f"payout:{settlement.method}", settlement.id, settlement.amount, settlement.currency
                ),
            )

            result: Optional[PayoutResult] = None
            try:
                result = await asyncio.wait_for(self.payout_provider.payout(req), timeout=self.payout_timeout)
            except Exception as exc:  # recorded on the settlement row
                note = "payout timeout" if isinstance(exc, asyncio.TimeoutError) else f"payout error: {exc}"
            else:
                note = f"payout status {result.status}"

            if result is not None and result.succeeded:
                settlement.mark_processed(result.transaction_id)
                outcome = _Outcome.PROCESSED
                logger.info(
                    "settlement_processed",
                    settlement_id=settlement.id,
                    payment_id=payment.id,
                    vendor_id=settlement.vendor_id,
                    amount=str(settlement.amount),
                    transaction_id=settlement.transaction_id,
                )
            else:
                settlement.mark_failed(note)
                outcome = _Outcome.FAILED
                logger.warning(
                    "settlement_failed",
                    settlement_id=settlement.id,
                    payment_id=payment.id,
                    vendor_id=settlement.vendor_id,
                    reason=note,
                )
            settlement = await uow.settlement_repository.update(settlement)
            return outcome, settlement
