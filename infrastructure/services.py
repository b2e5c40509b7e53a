"""
服务装配 - 将配置、Unit of Work 与外部适配器组装为应用服务

API 依赖与 Celery 任务共用这里的构造函数。
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from application.ports.payment_gateway import PaymentGateway
from application.ports.payout import PayoutProvider
from application.services.payment_service import PaymentService
from application.services.settlement_service import SettlementService
from core.config import settings
from core.settings import payment_settings
from domain.payment.commission import CommissionPolicy
from infrastructure.database import build_engine
from infrastructure.external.payments import get_payment_gateway
from infrastructure.external.payouts import get_payout_provider
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


def sqlalchemy_uow_factory(session_factory: Callable[[], AsyncSession]):
    def factory(*, readonly: bool = False) -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_factory=session_factory, readonly=readonly)

    return factory


def build_payment_service(uow_factory, gateway: Optional[PaymentGateway] = None) -> PaymentService:
    return PaymentService(
        uow_factory=uow_factory,
        gateway=gateway or get_payment_gateway(),
        commission_policy=CommissionPolicy(default_rate=payment_settings.default_commission_rate),
        timeout=payment_settings.timeouts.total,
    )


def build_settlement_service(uow_factory, payout_provider: Optional[PayoutProvider] = None) -> SettlementService:
    cfg = payment_settings.settlement
    return SettlementService(
        uow_factory=uow_factory,
        payout_provider=payout_provider or get_payout_provider(),
        default_payout_method=cfg.default_payout_method,
        batch_size=cfg.batch_size,
        payout_timeout=cfg.payout_timeout,
    )


@dataclass
class WorkerServices:
    payments: PaymentService
    settlements: SettlementService


@asynccontextmanager
async def worker_services() -> AsyncIterator[WorkerServices]:
    """
    为单次任务执行构建服务

    每个任务通过 asyncio.run 运行在新的事件循环中，因此引擎也按任务创建并在结束时释放
    """
    engine = build_engine(settings.database.url, echo=settings.database.echo)
    uow_factory = sqlalchemy_uow_factory(async_sessionmaker(bind=engine, expire_on_commit=False))
    payments = build_payment_service(uow_factory)
    settlements = build_settlement_service(uow_factory)
    try:
        yield WorkerServices(payments=payments, settlements=settlements)
    finally:
        await payments.aclose()
        close = getattr(settlements.payout_provider, "aclose", None)
        if callable(close):
            await close()
        await engine.dispose()
