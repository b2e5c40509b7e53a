"""Pytest bootstrap configuration.

Environment variables are set before any application module is imported so
settings objects pick up the test values.
"""
import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")

from decimal import Decimal
from typing import Optional

import pytest

from application.dtos.payments import ChargeRequest, GatewayRefundRequest, GatewayResult
from application.ports.payment_gateway import PaymentGateway
from application.ports.payout import PayoutProvider, PayoutRequest, PayoutResult
from domain.order.entity import Order, VendorOrder
from domain.vendor.entity import Vendor
from infrastructure.external.payments.exceptions import PaymentProviderError
from infrastructure.memory import ArenaStore, InMemoryUnitOfWork


class StubGateway(PaymentGateway):
    provider = "stub"

    def __init__(self, status: str = "succeeded", error: Optional[BaseException] = None):
        self.status = status
        self.error = error
        self.refund_status = "succeeded"
        self.refund_error: Optional[BaseException] = None
        self.charges: list[ChargeRequest] = []
        self.refunds: list[GatewayRefundRequest] = []

    async def charge(self, req: ChargeRequest) -> GatewayResult:  # type: ignore[override]
        self.charges.append(req)
        if self.error is not None:
            raise self.error
        return GatewayResult(transaction_id=f"ch_{req.payment_id}", status=self.status, raw={"id": f"ch_{req.payment_id}"})

    async def refund(self, req: GatewayRefundRequest) -> GatewayResult:  # type: ignore[override]
        self.refunds.append(req)
        if not req.transaction_id:
            raise PaymentProviderError("Charge id required for refund", provider=self.provider)
        if self.refund_error is not None:
            raise self.refund_error
        return GatewayResult(transaction_id=f"re_{req.refund_id}", status=self.refund_status, raw={})


class StubPayout(PayoutProvider):
    def __init__(self, status: str = "succeeded", error: Optional[BaseException] = None):
        self.status = status
        self.error = error
        self.requests: list[PayoutRequest] = []

    async def payout(self, req: PayoutRequest) -> PayoutResult:  # type: ignore[override]
        self.requests.append(req)
        if self.error is not None:
            raise self.error
        return PayoutResult(transaction_id=f"po_{req.settlement_id}", status=self.status)


def make_order(vendor_totals: dict[int, str], currency: str = "USD", **kwargs) -> Order:
    """Order with one vendor order per vendor; totals given as strings."""
    vendor_orders = [
        VendorOrder(id=None, order_id=None, vendor_id=vid, subtotal=Decimal(total), total=Decimal(total))
        for vid, total in vendor_totals.items()
    ]
    total = sum((Decimal(t) for t in vendor_totals.values()), Decimal("0"))
    return Order(
        id=None,
        user_id=1,
        subtotal=total,
        tax=Decimal("0"),
        total=total,
        currency=currency,
        vendor_orders=vendor_orders,
        **kwargs,
    )


@pytest.fixture
def store() -> ArenaStore:
    return ArenaStore()


@pytest.fixture
def uow_factory(store):
    def factory(*, readonly: bool = False) -> InMemoryUnitOfWork:
        return InMemoryUnitOfWork(store, readonly=readonly)

    return factory


@pytest.fixture
def gateway() -> StubGateway:
    return StubGateway()


@pytest.fixture
def payout() -> StubPayout:
    return StubPayout()


@pytest.fixture
def seed(store, uow_factory):
    """Async helper: register vendors and persist an order, returning it."""

    async def _seed(vendor_totals: dict[int, str], vendors: tuple[Vendor, ...] = (), **kwargs) -> Order:
        for vendor in vendors:
            store.tables.vendors[vendor.id] = vendor
        for vid in vendor_totals:
            store.tables.vendors.setdefault(vid, Vendor(id=vid, name=f"vendor-{vid}"))
        async with uow_factory() as uow:
            return await uow.order_repository.create(make_order(vendor_totals, **kwargs))

    return _seed
