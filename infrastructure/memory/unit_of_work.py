"""In-memory Unit of Work.

Single-process only. Useful for local dev and tests. Each unit of work
operates on a deep copy of the store tables; commit swaps the copy in,
rollback discards it.
"""
from __future__ import annotations

from typing import Optional

from domain.common.unit_of_work import AbstractUnitOfWork

from .repositories import (
    InMemoryOrderRepository,
    InMemoryPaymentRepository,
    InMemoryRefundRepository,
    InMemorySettlementRepository,
    InMemoryVendorRepository,
)
from .store import ArenaStore, ArenaTables


class InMemoryUnitOfWork(AbstractUnitOfWork):

    def __init__(self, store: ArenaStore, *, readonly: bool = False) -> None:
        super().__init__(readonly=readonly)
        self.store = store
        self._working: Optional[ArenaTables] = None

    async def __aenter__(self) -> "InMemoryUnitOfWork":
        self._working = self.store.begin()
        self._committed = False
        self.order_repository = InMemoryOrderRepository(self.store, self._working)
        self.vendor_repository = InMemoryVendorRepository(self.store, self._working)
        self.payment_repository = InMemoryPaymentRepository(self.store, self._working)
        self.refund_repository = InMemoryRefundRepository(self.store, self._working)
        self.settlement_repository = InMemorySettlementRepository(self.store, self._working)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            self._working = None

    async def commit(self) -> None:
        if not self._readonly and self._working is not None:
            self.store.commit(self._working)
        self._committed = True

    async def rollback(self) -> None:
        self._working = None
        self._committed = False
