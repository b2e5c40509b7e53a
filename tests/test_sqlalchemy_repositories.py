"""Repositories and Unit of Work against an in-memory SQLite database."""
from datetime import datetime, timezone
from decimal import Decimal

import pytest

pytest.importorskip("aiosqlite")

import pytest_asyncio
from sqlalchemy import event, select
from sqlalchemy.dialects import postgresql
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.pool import StaticPool

from application.services.payment_service import PaymentService
from application.services.settlement_service import SettlementService
from domain.common.exceptions import (
    PaymentNotFoundException,
    PaymentProcessingException,
    SettlementAlreadyExistsException,
)
from domain.order.entity import OrderItem, OrderStatus, OrderTax
from domain.payment.entity import Payment, PaymentMethod, PaymentStatus
from domain.settlement.entity import SettlementStatus, VendorSettlement
from infrastructure.database import build_engine, create_tables
from infrastructure.models import PaymentModel, VendorModel, VendorSettlementModel
from infrastructure.repositories.order_repository import SQLAlchemyOrderRepository
from infrastructure.services import sqlalchemy_uow_factory

from conftest import StubGateway, StubPayout, make_order


@pytest_asyncio.fixture
async def engine():
    engine = build_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite defers BEGIN; emit it ourselves so SAVEPOINT works
    @event.listens_for(engine.sync_engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def sql_uow_factory(session_factory):
    return sqlalchemy_uow_factory(session_factory)


async def _seed(session_factory, uow_factory, vendor_totals, rates=None):
    rates = rates or {}
    async with session_factory() as session:
        for vid in vendor_totals:
            session.add(VendorModel(id=vid, name=f"vendor-{vid}", commission_rate=rates.get(vid)))
        await session.commit()
    async with uow_factory() as uow:
        return await uow.order_repository.create(make_order(vendor_totals))


@pytest.mark.asyncio
async def test_order_round_trip(sql_uow_factory):
    order = make_order({1: "30.00"})
    vo = order.vendor_orders[0]
    vo.items.append(OrderItem(id=None, vendor_order_id=None, product_id=9, quantity=3, price=Decimal("10.00")))
    vo.taxes.append(OrderTax(id=None, order_id=None, tax_name="VAT", tax_rate=Decimal("0"), tax_amount=Decimal("0")))

    async with sql_uow_factory() as uow:
        created = await uow.order_repository.create(order)

    async with sql_uow_factory(readonly=True) as uow:
        loaded = await uow.order_repository.get_by_id(created.id)

    assert loaded.total == Decimal("30.00")
    assert loaded.vendor_ids() == [1]
    (item,) = loaded.vendor_orders[0].items
    assert (item.quantity, item.subtotal) == (3, Decimal("30.00"))
    assert loaded.vendor_orders[0].taxes[0].tax_name == "VAT"
    assert loaded.taxes == []


@pytest.mark.asyncio
async def test_split_payment_refund_and_settlement_flow(session_factory, sql_uow_factory):
    order = await _seed(session_factory, sql_uow_factory, {1: "60.00", 2: "40.00"}, rates={1: Decimal("0.10")})
    payments = PaymentService(sql_uow_factory, StubGateway())

    parent = await payments.process_order_payment(order.id, "stripe")
    assert parent.status == "paid"
    by_vendor = {c.vendor_id: c for c in parent.children}
    assert by_vendor[1].vendor_amount == Decimal("54.00")
    assert by_vendor[2].platform_fee == Decimal("6.00")

    async with sql_uow_factory(readonly=True) as uow:
        stored = await uow.order_repository.get_by_id(order.id)
        assert stored.status == OrderStatus.PROCESSING
        assert await uow.payment_repository.exists_active_by_order(order.id)

    child_id = by_vendor[1].id
    refund = await payments.create_refund(child_id, Decimal("20.00"))
    await payments.execute_refund(refund.id)
    fetched = await payments.get_payment(child_id)
    assert fetched.transaction_id == parent.transaction_id
    assert fetched.status == PaymentStatus.PARTIALLY_REFUNDED.value
    assert [r.status for r in fetched.refunds] == ["processed"]

    payout = StubPayout()
    settlements = SettlementService(sql_uow_factory, payout)
    summary = await settlements.process_settlements()
    # the partially refunded child is no longer settleable
    assert summary.processed == 1
    assert payout.requests[0].amount == Decimal("34.00")
    assert (await settlements.process_settlements()).selected == 0


@pytest.mark.asyncio
async def test_failed_gateway_commits_failed_rows(session_factory, sql_uow_factory):
    order = await _seed(session_factory, sql_uow_factory, {1: "60.00", 2: "40.00"})
    payments = PaymentService(sql_uow_factory, StubGateway(error=RuntimeError("gateway down")))
    with pytest.raises(PaymentProcessingException):
        await payments.process_order_payment(order.id, "stripe")

    async with session_factory() as session:
        rows = (await session.execute(select(PaymentModel).where(PaymentModel.order_id == order.id))).scalars().all()
    assert {p.status for p in rows} == {PaymentStatus.FAILED.value}
    assert len(rows) == 3

    async with sql_uow_factory(readonly=True) as uow:
        assert not await uow.payment_repository.exists_active_by_order(order.id)
        assert await uow.payment_repository.list_needing_settlement(limit=10) == []


@pytest.mark.asyncio
async def test_duplicate_settlement_rolls_back_only_savepoint(session_factory, sql_uow_factory):
    order = await _seed(session_factory, sql_uow_factory, {1: "10.00"})
    payment = await PaymentService(sql_uow_factory, StubGateway()).process_order_payment(order.id, "stripe")
    now = datetime.now(timezone.utc)

    def _settlement():
        return VendorSettlement(
            id=None, vendor_id=1, payment_id=payment.id, amount=Decimal("8.50"), currency="USD",
            method="bank_transfer", created_at=now, updated_at=now,
        )

    async with sql_uow_factory() as uow:
        first = await uow.settlement_repository.create(_settlement())
        with pytest.raises(SettlementAlreadyExistsException):
            await uow.settlement_repository.create(_settlement())
        first.mark_processed("po_1")
        await uow.settlement_repository.update(first)

    async with session_factory() as session:
        rows = (await session.execute(select(VendorSettlementModel))).scalars().all()
    assert len(rows) == 1
    assert rows[0].status == SettlementStatus.PROCESSED.value


@pytest.mark.asyncio
async def test_include_failed_selects_failed_settlements(session_factory, sql_uow_factory):
    order = await _seed(session_factory, sql_uow_factory, {1: "10.00"})
    await PaymentService(sql_uow_factory, StubGateway()).process_order_payment(order.id, "stripe")
    await SettlementService(sql_uow_factory, StubPayout(status="rejected")).process_settlements()

    async with sql_uow_factory(readonly=True) as uow:
        assert await uow.payment_repository.list_needing_settlement(limit=10) == []
        retry = await uow.payment_repository.list_needing_settlement(limit=10, include_failed=True)
    assert len(retry) == 1


@pytest.mark.asyncio
async def test_update_unknown_payment(sql_uow_factory):
    ghost = Payment(id=123, order_id=1, amount=Decimal("1.00"), currency="USD", method=PaymentMethod.STRIPE)
    async with sql_uow_factory() as uow:
        with pytest.raises(PaymentNotFoundException):
            await uow.payment_repository.update(ghost)


@pytest.mark.asyncio
async def test_order_get_for_update_locks_only_order_row(session_factory, sql_uow_factory):
    order = await _seed(session_factory, sql_uow_factory, {1: "60.00", 2: "40.00"})

    async with session_factory() as session:
        statements = []
        execute = session.execute

        async def capture(stmt, *args, **kwargs):
            statements.append(stmt)
            return await execute(stmt, *args, **kwargs)

        session.execute = capture
        locked = await SQLAlchemyOrderRepository(session).get_for_update(order.id)
        assert await SQLAlchemyOrderRepository(session).get_for_update(999) is None

    assert sorted(locked.vendor_ids()) == [1, 2]
    sql = str(statements[0].compile(dialect=postgresql.dialect()))
    assert "FOR UPDATE OF orders" in sql
