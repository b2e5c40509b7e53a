from decimal import Decimal

import pytest

from application.services.payment_service import PaymentService
from domain.common.exceptions import (
    DomainValidationException,
    PaymentNotRefundableException,
    PaymentProcessingException,
    RefundExceedsBalanceException,
    RefundNotFoundException,
)
from domain.payment.entity import PaymentStatus, RefundStatus
from infrastructure.memory.repositories import InMemoryPaymentRepository

from conftest import StubGateway


async def _paid_payment(service: PaymentService, seed, vendor_totals=None):
    order = await seed(vendor_totals or {1: "100.00"})
    return await service.process_order_payment(order.id, "stripe")


@pytest.mark.asyncio
async def test_partial_then_full_refund(uow_factory, gateway, seed, store):
    service = PaymentService(uow_factory, gateway)
    payment = await _paid_payment(service, seed)

    first = await service.create_refund(payment.id, Decimal("40.00"), "damaged")
    assert first.status == "pending"
    assert store.tables.payments[payment.id].status == PaymentStatus.PARTIALLY_REFUNDED

    await service.create_refund(payment.id, Decimal("60.00"))
    assert store.tables.payments[payment.id].status == PaymentStatus.REFUNDED

    with pytest.raises(RefundExceedsBalanceException):
        await service.create_refund(payment.id, Decimal("0.01"))
    assert len(store.tables.refunds) == 2


@pytest.mark.asyncio
async def test_refund_validation(uow_factory, gateway, seed, store):
    service = PaymentService(uow_factory, gateway)
    payment = await _paid_payment(service, seed)

    with pytest.raises(DomainValidationException):
        await service.create_refund(payment.id, Decimal("0"))
    with pytest.raises(RefundExceedsBalanceException):
        await service.create_refund(payment.id, Decimal("100.01"))
    assert store.tables.refunds == {}
    assert store.tables.payments[payment.id].status == PaymentStatus.PAID


@pytest.mark.asyncio
async def test_parent_and_failed_payments_not_refundable(uow_factory, seed, store):
    service = PaymentService(uow_factory, StubGateway())
    parent = await _paid_payment(service, seed, {1: "60.00", 2: "40.00"})
    with pytest.raises(PaymentNotRefundableException):
        await service.create_refund(parent.id, Decimal("10.00"))

    # children carry the captured money and can be refunded
    child = parent.children[0]
    refund = await service.create_refund(child.id, Decimal("10.00"))
    assert refund.payment_id == child.id

    failing = PaymentService(uow_factory, StubGateway(status="failed"))
    order = await seed({3: "15.00"})
    with pytest.raises(PaymentProcessingException):
        await failing.process_order_payment(order.id, "stripe")
    failed = next(p for p in store.tables.payments.values() if p.order_id == order.id)
    with pytest.raises(PaymentNotRefundableException):
        await service.create_refund(failed.id, Decimal("1.00"))


@pytest.mark.asyncio
async def test_execute_refund_success(uow_factory, gateway, seed, store):
    service = PaymentService(uow_factory, gateway)
    payment = await _paid_payment(service, seed)
    refund = await service.create_refund(payment.id, Decimal("40.00"))

    done = await service.execute_refund(refund.id)
    assert done.status == "processed"
    assert done.transaction_id == f"re_{refund.id}"
    assert gateway.refunds[0].transaction_id == payment.transaction_id
    assert store.tables.payments[payment.id].status == PaymentStatus.PARTIALLY_REFUNDED

    # redelivery is a no-op
    again = await service.execute_refund(refund.id)
    assert again.status == "processed"
    assert len(gateway.refunds) == 1


@pytest.mark.asyncio
async def test_execute_refund_failure_restores_payment(uow_factory, gateway, seed, store):
    service = PaymentService(uow_factory, gateway)
    payment = await _paid_payment(service, seed)
    refund = await service.create_refund(payment.id, Decimal("40.00"))

    gateway.refund_error = RuntimeError("charge already disputed")
    failed = await service.execute_refund(refund.id)
    assert failed.status == "failed"
    assert failed.failure_reason == "charge already disputed"
    assert store.tables.refunds[refund.id].status == RefundStatus.FAILED
    assert store.tables.payments[payment.id].status == PaymentStatus.PAID

    # the failed amount is refundable again
    retry = await service.create_refund(payment.id, Decimal("100.00"))
    assert retry.amount == Decimal("100.00")


@pytest.mark.asyncio
async def test_failed_refund_on_fully_refunded_payment_keeps_status(uow_factory, gateway, seed, store):
    service = PaymentService(uow_factory, gateway)
    payment = await _paid_payment(service, seed)
    refund = await service.create_refund(payment.id, Decimal("100.00"))

    gateway.refund_status = "failed"
    result = await service.execute_refund(refund.id)
    assert result.status == "failed"
    assert store.tables.payments[payment.id].status == PaymentStatus.REFUNDED


@pytest.mark.asyncio
async def test_execute_unknown_refund(uow_factory, gateway):
    with pytest.raises(RefundNotFoundException):
        await PaymentService(uow_factory, gateway).execute_refund(404)


@pytest.mark.asyncio
async def test_child_refund_is_sent_against_parent_charge(uow_factory, gateway, seed, store):
    service = PaymentService(uow_factory, gateway)
    parent = await _paid_payment(service, seed, {1: "60.00", 2: "40.00"})
    child = parent.children[0]
    assert child.transaction_id == parent.transaction_id == f"ch_{parent.id}"

    refund = await service.create_refund(child.id, Decimal("10.00"))
    done = await service.execute_refund(refund.id)

    assert done.status == "processed"
    assert gateway.refunds[0].transaction_id == f"ch_{parent.id}"
    assert gateway.refunds[0].amount == Decimal("10.00")
    assert store.tables.payments[child.id].status == PaymentStatus.PARTIALLY_REFUNDED


@pytest.mark.asyncio
async def test_child_without_charge_id_falls_back_to_parent(uow_factory, gateway, seed, store):
    service = PaymentService(uow_factory, gateway)
    parent = await _paid_payment(service, seed, {1: "60.00", 2: "40.00"})
    child_id = parent.children[1].id
    store.tables.payments[child_id].transaction_id = None

    refund = await service.create_refund(child_id, Decimal("40.00"))
    done = await service.execute_refund(refund.id)

    assert done.status == "processed"
    assert gateway.refunds[0].transaction_id == f"ch_{parent.id}"
    assert store.tables.payments[child_id].status == PaymentStatus.REFUNDED


@pytest.mark.asyncio
async def test_refund_reads_payment_with_row_lock(uow_factory, gateway, seed, monkeypatch):
    service = PaymentService(uow_factory, gateway)
    payment = await _paid_payment(service, seed)

    locked = []
    original = InMemoryPaymentRepository.get_for_update

    async def recording(self, payment_id):
        locked.append(payment_id)
        return await original(self, payment_id)

    monkeypatch.setattr(InMemoryPaymentRepository, "get_for_update", recording)
    await service.create_refund(payment.id, Decimal("10.00"))
    assert locked == [payment.id]
