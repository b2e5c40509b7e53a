import asyncio
from decimal import Decimal

import pytest

from application.services.payment_service import PaymentService
from application.services.settlement_service import SettlementService
from domain.common.exceptions import PaymentProcessingException, SettlementAlreadyExistsException
from domain.payment.entity import PaymentStatus
from domain.settlement.entity import SettlementStatus
from domain.vendor.entity import Vendor
from infrastructure.memory.repositories import InMemorySettlementRepository

from conftest import StubGateway, StubPayout


async def _pay(uow_factory, seed, vendor_totals, vendors=(), gateway=None):
    order = await seed(vendor_totals, vendors=vendors)
    return await PaymentService(uow_factory, gateway or StubGateway()).process_order_payment(order.id, "stripe")


@pytest.mark.asyncio
async def test_second_run_creates_nothing(uow_factory, seed, store, payout):
    payment = await _pay(uow_factory, seed, {1: "100.00"})
    service = SettlementService(uow_factory, payout)

    first = await service.process_settlements()
    assert (first.selected, first.processed) == (1, 1)
    (settlement,) = store.tables.settlements.values()
    assert settlement.payment_id == payment.id
    assert settlement.amount == Decimal("85.00")
    assert settlement.status == SettlementStatus.PROCESSED
    assert settlement.transaction_id == f"po_{settlement.id}"

    second = await service.process_settlements()
    assert (second.selected, second.processed, second.failed) == (0, 0, 0)
    assert len(store.tables.settlements) == 1
    assert len(payout.requests) == 1


@pytest.mark.asyncio
async def test_children_settled_parent_never(uow_factory, seed, store, payout):
    parent = await _pay(
        uow_factory,
        seed,
        {1: "60.00", 2: "40.00"},
        vendors=(Vendor(id=1, name="A", commission_rate=Decimal("0.10"), preferred_payout_method="stripe",
                        payout_account="acct_1"),),
    )
    summary = await SettlementService(uow_factory, payout).process_settlements()

    assert summary.processed == 2
    settled = {s.vendor_id: s for s in store.tables.settlements.values()}
    assert parent.id not in {s.payment_id for s in settled.values()}
    assert settled[1].amount == Decimal("54.00")
    assert settled[1].method == "stripe"
    assert settled[2].amount == Decimal("34.00")
    assert settled[2].method == "bank_transfer"
    destinations = {r.vendor_id: r.destination for r in payout.requests}
    assert destinations == {1: "acct_1", 2: None}
    # payment status is untouched by settlement
    assert {p.status for p in store.tables.payments.values()} == {PaymentStatus.PAID}


@pytest.mark.asyncio
async def test_failed_payments_never_settled(uow_factory, seed, store, payout):
    with pytest.raises(PaymentProcessingException):
        await _pay(uow_factory, seed, {1: "60.00", 2: "40.00"}, gateway=StubGateway(error=RuntimeError("boom")))
    summary = await SettlementService(uow_factory, payout).process_settlements()
    assert summary.selected == 0
    assert store.tables.settlements == {}


@pytest.mark.asyncio
async def test_payout_failure_recorded_and_retried_explicitly(uow_factory, seed, store):
    await _pay(uow_factory, seed, {1: "100.00"})
    failing = StubPayout(status="rejected")
    summary = await SettlementService(uow_factory, failing).process_settlements()
    assert (summary.processed, summary.failed) == (0, 1)
    (settlement,) = store.tables.settlements.values()
    assert settlement.status == SettlementStatus.FAILED
    assert settlement.notes == "payout status rejected"

    healthy = StubPayout()
    skipped = await SettlementService(uow_factory, healthy).process_settlements()
    assert skipped.selected == 0
    assert healthy.requests == []

    retried = await SettlementService(uow_factory, healthy).process_settlements(include_failed=True)
    assert retried.processed == 1
    (settlement,) = store.tables.settlements.values()
    assert settlement.status == SettlementStatus.PROCESSED
    # same settlement row, same idempotency key
    assert healthy.requests[0].idempotency_key == failing.requests[0].idempotency_key


@pytest.mark.asyncio
async def test_payout_exception_and_timeout_become_notes(uow_factory, seed, store):
    class SlowPayout(StubPayout):
        async def payout(self, req):  # type: ignore[override]
            await asyncio.sleep(1)

    await _pay(uow_factory, seed, {1: "10.00"})
    await _pay(uow_factory, seed, {2: "20.00"})

    summary = await SettlementService(uow_factory, SlowPayout(), payout_timeout=0.01).process_settlements()
    assert summary.failed == 2
    assert {s.notes for s in store.tables.settlements.values()} == {"payout timeout"}

    erroring = StubPayout(error=RuntimeError("bank offline"))
    summary = await SettlementService(uow_factory, erroring).process_settlements(include_failed=True)
    assert summary.failed == 2
    assert {s.notes for s in store.tables.settlements.values()} == {"payout error: bank offline"}


@pytest.mark.asyncio
async def test_concurrent_settlement_is_skipped(uow_factory, seed, store, payout, monkeypatch):
    payment = await _pay(uow_factory, seed, {1: "100.00"})

    async def conflicting_create(self, settlement):
        raise SettlementAlreadyExistsException(settlement.payment_id)

    monkeypatch.setattr(InMemorySettlementRepository, "create", conflicting_create)
    summary = await SettlementService(uow_factory, payout).process_settlements()

    assert (summary.selected, summary.skipped, summary.processed) == (1, 1, 0)
    assert payout.requests == []
    assert store.tables.settlements == {}
    assert store.tables.payments[payment.id].status == PaymentStatus.PAID


@pytest.mark.asyncio
async def test_one_bad_payment_does_not_stop_batch(uow_factory, seed, store, payout, monkeypatch):
    first = await _pay(uow_factory, seed, {1: "10.00"})
    await _pay(uow_factory, seed, {2: "20.00"})

    original = InMemorySettlementRepository.create

    async def flaky_create(self, settlement):
        if settlement.payment_id == first.id:
            raise RuntimeError("disk full")
        return await original(self, settlement)

    monkeypatch.setattr(InMemorySettlementRepository, "create", flaky_create)
    summary = await SettlementService(uow_factory, payout).process_settlements()
    assert (summary.errors, summary.processed) == (1, 1)


@pytest.mark.asyncio
async def test_batch_size_limits_selection(uow_factory, seed, payout):
    for vendor_id in (1, 2, 3):
        await _pay(uow_factory, seed, {vendor_id: "10.00"})
    service = SettlementService(uow_factory, payout, batch_size=2)
    assert (await service.process_settlements()).processed == 2
    assert (await service.process_settlements()).processed == 1
