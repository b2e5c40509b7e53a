import asyncio
import logging
import random
from decimal import Decimal

import pytest

from application.services.payment_service import PaymentService
from domain.common.exceptions import (
    DomainValidationException,
    OrderNotFoundException,
    OrderNotPayableException,
    PaymentAlreadyExistsException,
    PaymentProcessingException,
    SplitAmountMismatchException,
    UnsupportedPaymentMethodException,
)
from domain.order.entity import OrderStatus
from domain.payment.commission import CommissionPolicy
from domain.payment.entity import PaymentStatus
from domain.vendor.entity import Vendor
from infrastructure.memory.repositories import InMemoryOrderRepository

from conftest import StubGateway


def _service(uow_factory, gateway, **kwargs) -> PaymentService:
    return PaymentService(uow_factory, gateway, CommissionPolicy(default_rate=Decimal("0.15")), **kwargs)


@pytest.mark.asyncio
async def test_single_vendor_order_gets_standalone_payment(uow_factory, gateway, seed, store):
    order = await seed({1: "100.00"})
    dto = await _service(uow_factory, gateway).process_order_payment(order.id, "stripe")

    assert dto.payment_type == "standalone"
    assert dto.status == "paid"
    assert dto.amount == Decimal("100.00")
    assert dto.vendor_amount == Decimal("85.00")
    assert dto.platform_fee == Decimal("15.00")
    assert dto.processed_at is not None
    assert dto.transaction_id == f"ch_{dto.id}"
    assert store.tables.orders[order.id].status == OrderStatus.PROCESSING
    assert len(gateway.charges) == 1
    assert gateway.charges[0].idempotency_key


@pytest.mark.asyncio
async def test_multi_vendor_order_splits_into_children(uow_factory, gateway, seed, store):
    order = await seed(
        {1: "60.00", 2: "40.00"},
        vendors=(Vendor(id=1, name="A", commission_rate=Decimal("0.10")),),
    )
    dto = await _service(uow_factory, gateway).process_order_payment(order.id, "stripe")

    assert dto.payment_type == "parent"
    assert dto.amount == Decimal("100.00")
    assert dto.status == "paid"
    assert dto.vendor_amount is None
    assert dto.split_details["child_count"] == 2
    assert dto.split_details["total_amount"] == "100.00"

    by_vendor = {c.vendor_id: c for c in dto.children}
    assert (by_vendor[1].amount, by_vendor[1].vendor_amount, by_vendor[1].platform_fee) == (
        Decimal("60.00"), Decimal("54.00"), Decimal("6.00"),
    )
    assert (by_vendor[2].amount, by_vendor[2].vendor_amount, by_vendor[2].platform_fee) == (
        Decimal("40.00"), Decimal("34.00"), Decimal("6.00"),
    )
    assert all(c.status == "paid" for c in dto.children)
    assert all(c.parent_payment_id == dto.id for c in dto.children)
    # only the parent is submitted
    assert [c.payment_id for c in gateway.charges] == [dto.id]


@pytest.mark.asyncio
async def test_gateway_error_fails_whole_graph(uow_factory, seed, store):
    gateway = StubGateway(error=RuntimeError("connection reset"))
    order = await seed({1: "60.00", 2: "40.00"})

    with pytest.raises(PaymentProcessingException) as exc_info:
        await _service(uow_factory, gateway).process_order_payment(order.id, "stripe")

    assert exc_info.value.message == "Payment failed"
    assert isinstance(exc_info.value.__cause__, RuntimeError)
    payments = list(store.tables.payments.values())
    assert len(payments) == 3
    assert {p.status for p in payments} == {PaymentStatus.FAILED}
    parent = next(p for p in payments if p.is_parent_payment())
    assert parent.gateway_response["message"] == "connection reset"
    assert store.tables.orders[order.id].status == OrderStatus.PENDING


@pytest.mark.asyncio
async def test_gateway_decline_fails_standalone(uow_factory, seed, store):
    gateway = StubGateway(status="failed")
    order = await seed({1: "25.00"})
    with pytest.raises(PaymentProcessingException):
        await _service(uow_factory, gateway).process_order_payment(order.id, "credit_card")
    (payment,) = store.tables.payments.values()
    assert payment.status == PaymentStatus.FAILED
    assert payment.failure_reason == "gateway status failed"


@pytest.mark.asyncio
async def test_gateway_timeout_fails_payment(uow_factory, seed, store):
    class SlowGateway(StubGateway):
        async def charge(self, req):  # type: ignore[override]
            await asyncio.sleep(1)

    order = await seed({1: "25.00"})
    with pytest.raises(PaymentProcessingException) as exc_info:
        await _service(uow_factory, SlowGateway(), timeout=0.01).process_order_payment(order.id, "stripe")
    assert isinstance(exc_info.value.__cause__, asyncio.TimeoutError)
    (payment,) = store.tables.payments.values()
    assert payment.failure_reason == "gateway timeout"


@pytest.mark.asyncio
async def test_failed_payment_allows_new_attempt(uow_factory, seed, store):
    order = await seed({1: "25.00"})
    with pytest.raises(PaymentProcessingException):
        await _service(uow_factory, StubGateway(status="failed")).process_order_payment(order.id, "stripe")
    dto = await _service(uow_factory, StubGateway()).process_order_payment(order.id, "stripe")
    assert dto.status == "paid"


@pytest.mark.asyncio
async def test_second_payment_for_order_rejected(uow_factory, gateway, seed, store):
    order = await seed({1: "25.00"})
    service = _service(uow_factory, gateway)
    await service.process_order_payment(order.id, "stripe")
    # order is processing now; reopen it to reach the duplicate check
    store.tables.orders[order.id].status = OrderStatus.PENDING
    with pytest.raises(PaymentAlreadyExistsException):
        await service.process_order_payment(order.id, "stripe")
    assert len(store.tables.payments) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("method", ["paypal", "cash", "bitcoin"])
async def test_unsupported_method_writes_nothing(uow_factory, gateway, seed, store, method):
    order = await seed({1: "60.00", 2: "40.00"})
    commits = store.commits
    with pytest.raises(UnsupportedPaymentMethodException):
        await _service(uow_factory, gateway).process_order_payment(order.id, method)
    assert store.tables.payments == {}
    assert store.commits == commits
    assert gateway.charges == []


@pytest.mark.asyncio
async def test_invalid_vendor_preference_rejected_before_writes(uow_factory, gateway, seed, store):
    order = await seed(
        {1: "60.00", 2: "40.00"},
        vendors=(Vendor(id=2, name="B", preferred_payment_method="barter"),),
    )
    with pytest.raises(DomainValidationException):
        await _service(uow_factory, gateway).process_order_payment(order.id, "stripe")
    assert store.tables.payments == {}


@pytest.mark.asyncio
async def test_vendor_preferred_method_used_for_child(uow_factory, gateway, seed):
    order = await seed(
        {1: "60.00", 2: "40.00"},
        vendors=(Vendor(id=2, name="B", preferred_payment_method="bank_transfer"),),
    )
    dto = await _service(uow_factory, gateway).process_order_payment(order.id, "stripe")
    methods = {c.vendor_id: c.method for c in dto.children}
    assert methods == {1: "stripe", 2: "bank_transfer"}


@pytest.mark.asyncio
async def test_missing_order(uow_factory, gateway):
    with pytest.raises(OrderNotFoundException):
        await _service(uow_factory, gateway).process_order_payment(999, "stripe")


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [OrderStatus.CANCELLED, OrderStatus.SHIPPED])
async def test_order_must_be_pending(uow_factory, gateway, seed, store, status):
    order = await seed({1: "25.00"})
    store.tables.orders[order.id].status = status
    with pytest.raises(OrderNotPayableException):
        await _service(uow_factory, gateway).process_order_payment(order.id, "stripe")
    assert store.tables.payments == {}


@pytest.mark.asyncio
async def test_get_payment_includes_children(uow_factory, gateway, seed):
    order = await seed({1: "60.00", 2: "40.00"})
    service = _service(uow_factory, gateway)
    created = await service.process_order_payment(order.id, "stripe")
    fetched = await service.get_payment(created.id)
    assert [c.id for c in fetched.children] == [c.id for c in created.children]
    assert fetched.refunds == []


@pytest.mark.asyncio
async def test_vendor_totals_must_match_order_total(uow_factory, gateway, seed, store):
    order = await seed({1: "60.00", 2: "40.00"})
    store.tables.orders[order.id].total = Decimal("120.00")
    with pytest.raises(SplitAmountMismatchException):
        await _service(uow_factory, gateway).process_order_payment(order.id, "stripe")
    assert store.tables.payments == {}
    assert gateway.charges == []


@pytest.mark.asyncio
async def test_domain_events_are_logged(uow_factory, gateway, seed, caplog):
    caplog.set_level(logging.INFO)
    order = await seed({1: "60.00", 2: "40.00"})
    dto = await _service(uow_factory, gateway).process_order_payment(order.id, "stripe")

    events = [
        r.msg for r in caplog.records
        if isinstance(r.msg, dict) and r.msg.get("event") == "payment_domain_event"
    ]
    types = {e["event_type"] for e in events}
    assert {"PaymentCreated", "PaymentSucceeded"} <= types
    assert all(e["order_id"] == order.id for e in events)
    assert dto.id in {e["payment_id"] for e in events}


@pytest.mark.asyncio
async def test_payment_reads_order_with_row_lock(uow_factory, gateway, seed, monkeypatch):
    locked = []
    original = InMemoryOrderRepository.get_for_update

    async def recording(self, order_id):
        locked.append(order_id)
        return await original(self, order_id)

    monkeypatch.setattr(InMemoryOrderRepository, "get_for_update", recording)
    order = await seed({1: "60.00", 2: "40.00"})
    await _service(uow_factory, gateway).process_order_payment(order.id, "stripe")
    assert locked == [order.id]


@pytest.mark.asyncio
async def test_random_splits_conserve_money(uow_factory, gateway, seed, store):
    rng = random.Random(20240611)
    service = PaymentService(uow_factory, gateway)

    for i in range(50):
        count = rng.randint(2, 5)
        base = (i + 1) * 10
        totals = {base + n: f"{Decimal(rng.randint(1, 500_000)) / 100:.2f}" for n in range(count)}
        vendors = tuple(
            Vendor(
                id=vid,
                name=f"vendor-{vid}",
                commission_rate=Decimal(rng.randint(0, 10_000)) / 10_000,
            )
            for vid in totals
        )
        order = await seed(totals, vendors=vendors)
        dto = await service.process_order_payment(order.id, "stripe")

        assert dto.amount == sum(Decimal(t) for t in totals.values())
        children = [store.tables.payments[c.id] for c in dto.children]
        assert len(children) == count
        assert sum(c.amount for c in children) == dto.amount
        assert sum(c.vendor_amount for c in children) + sum(c.platform_fee for c in children) == dto.amount
        for child in children:
            assert child.vendor_amount >= 0 and child.platform_fee >= 0
