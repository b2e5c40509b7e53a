"""In-memory repository implementations over an ArenaTables working copy.

Entities are copied on the way in and out so that only ``update`` changes
stored state, matching the SQLAlchemy repositories.
"""
from __future__ import annotations

import copy
from dataclasses import replace
from decimal import Decimal
from typing import Iterable, List, Optional

from domain.common.exceptions import (
    BusinessException,
    OrderNotFoundException,
    PaymentNotFoundException,
    RefundNotFoundException,
    SettlementAlreadyExistsException,
)
from domain.order.entity import Order
from domain.order.repository import OrderRepository
from domain.payment.entity import (
    Payment,
    PaymentRefund,
    PaymentStatus,
    RefundStatus,
    SETTLEABLE_STATUSES,
)
from domain.payment.repository import PaymentRepository, RefundRepository
from domain.settlement.entity import SettlementStatus, VendorSettlement
from domain.settlement.repository import SettlementRepository
from domain.vendor.entity import Vendor
from domain.vendor.repository import VendorRepository
from shared.codes import BusinessCode

from .store import ArenaStore, ArenaTables


class _Base:
    def __init__(self, store: ArenaStore, tables: ArenaTables) -> None:
        self._store = store
        self._tables = tables


class InMemoryOrderRepository(_Base, OrderRepository):

    async def create(self, order: Order) -> Order:
        order = copy.deepcopy(order)
        order.id = self._store.next_id("orders")
        for vo in order.vendor_orders:
            vo.order_id = order.id
            if vo.id is None:
                vo.id = self._store.next_id("vendor_orders")
        self._tables.orders[order.id] = order
        return copy.deepcopy(order)

    async def get_by_id(self, order_id: int) -> Optional[Order]:
        order = self._tables.orders.get(order_id)
        return copy.deepcopy(order) if order else None

    async def get_for_update(self, order_id: int) -> Optional[Order]:
        return await self.get_by_id(order_id)

    async def update(self, order: Order) -> Order:
        if order.id not in self._tables.orders:
            raise OrderNotFoundException(order.id)
        self._tables.orders[order.id] = copy.deepcopy(order)
        return copy.deepcopy(order)


class InMemoryVendorRepository(_Base, VendorRepository):

    async def add(self, vendor: Vendor) -> Vendor:
        self._tables.vendors[vendor.id] = vendor
        return vendor

    async def get_by_id(self, vendor_id: int) -> Optional[Vendor]:
        return self._tables.vendors.get(vendor_id)

    async def get_many(self, vendor_ids: Iterable[int]) -> dict[int, Vendor]:
        return {vid: self._tables.vendors[vid] for vid in set(vendor_ids) if vid in self._tables.vendors}


class InMemoryPaymentRepository(_Base, PaymentRepository):

    async def create(self, payment: Payment) -> Payment:
        payment = copy.deepcopy(payment)
        payment.id = self._store.next_id("payments")
        self._tables.payments[payment.id] = payment
        return copy.deepcopy(payment)

    async def get_by_id(self, payment_id: int) -> Optional[Payment]:
        payment = self._tables.payments.get(payment_id)
        return copy.deepcopy(payment) if payment else None

    async def get_for_update(self, payment_id: int) -> Optional[Payment]:
        return await self.get_by_id(payment_id)

    async def list_children(self, parent_payment_id: int) -> List[Payment]:
        return [
            copy.deepcopy(p)
            for _, p in sorted(self._tables.payments.items())
            if p.parent_payment_id == parent_payment_id
        ]

    async def exists_active_by_order(self, order_id: int) -> bool:
        return any(
            p.order_id == order_id and p.status != PaymentStatus.FAILED
            for p in self._tables.payments.values()
        )

    async def list_needing_settlement(self, *, limit: int, include_failed: bool = False) -> List[Payment]:
        settled = {s.payment_id: s for s in self._tables.settlements.values()}
        out: List[Payment] = []
        for _, p in sorted(self._tables.payments.items()):
            if p.is_parent_payment() or p.status not in SETTLEABLE_STATUSES:
                continue
            existing = settled.get(p.id)
            if existing is not None and not (include_failed and existing.status == SettlementStatus.FAILED):
                continue
            out.append(copy.deepcopy(p))
            if len(out) >= limit:
                break
        return out

    async def update(self, payment: Payment) -> Payment:
        if payment.id not in self._tables.payments:
            raise PaymentNotFoundException(payment.id)
        self._tables.payments[payment.id] = copy.deepcopy(payment)
        return copy.deepcopy(payment)


class InMemoryRefundRepository(_Base, RefundRepository):

    async def create(self, refund: PaymentRefund) -> PaymentRefund:
        refund = replace(refund, id=self._store.next_id("refunds"))
        self._tables.refunds[refund.id] = refund
        return copy.deepcopy(refund)

    async def get_by_id(self, refund_id: int) -> Optional[PaymentRefund]:
        refund = self._tables.refunds.get(refund_id)
        return copy.deepcopy(refund) if refund else None

    async def list_by_payment(self, payment_id: int) -> List[PaymentRefund]:
        return [copy.deepcopy(r) for _, r in sorted(self._tables.refunds.items()) if r.payment_id == payment_id]

    async def update(self, refund: PaymentRefund) -> PaymentRefund:
        if refund.id not in self._tables.refunds:
            raise RefundNotFoundException(refund.id)
        self._tables.refunds[refund.id] = copy.deepcopy(refund)
        return copy.deepcopy(refund)

    async def get_total_refunded_amount(self, payment_id: int) -> Decimal:
        return sum(
            (r.amount for r in self._tables.refunds.values()
             if r.payment_id == payment_id and r.status != RefundStatus.FAILED),
            Decimal("0"),
        )


class InMemorySettlementRepository(_Base, SettlementRepository):

    async def create(self, settlement: VendorSettlement) -> VendorSettlement:
        # unique(payment_id)
        if any(s.payment_id == settlement.payment_id for s in self._tables.settlements.values()):
            raise SettlementAlreadyExistsException(settlement.payment_id)
        settlement = replace(settlement, id=self._store.next_id("settlements"))
        self._tables.settlements[settlement.id] = settlement
        return copy.deepcopy(settlement)

    async def get_by_id(self, settlement_id: int) -> Optional[VendorSettlement]:
        s = self._tables.settlements.get(settlement_id)
        return copy.deepcopy(s) if s else None

    async def get_by_payment_id(self, payment_id: int) -> Optional[VendorSettlement]:
        for s in self._tables.settlements.values():
            if s.payment_id == payment_id:
                return copy.deepcopy(s)
        return None

    async def update(self, settlement: VendorSettlement) -> VendorSettlement:
        if settlement.id not in self._tables.settlements:
            raise BusinessException(
                code=BusinessCode.NOT_FOUND,
                message="Settlement not found",
                error_type="SettlementNotFound",
                details={"settlement_id": settlement.id},
            )
        self._tables.settlements[settlement.id] = copy.deepcopy(settlement)
        return copy.deepcopy(settlement)
