"""
API依赖项 - 应用服务装配
"""
from typing import AsyncIterator

from application.services.payment_service import PaymentService
from application.services.settlement_service import SettlementService
from infrastructure.services import build_payment_service, build_settlement_service
from infrastructure.tasks import TaskDispatcher
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


async def get_payment_service() -> AsyncIterator[PaymentService]:
    service = build_payment_service(uow_factory=SQLAlchemyUnitOfWork)
    try:
        yield service
    finally:
        await service.aclose()


async def get_settlement_service() -> AsyncIterator[SettlementService]:
    service = build_settlement_service(uow_factory=SQLAlchemyUnitOfWork)
    try:
        yield service
    finally:
        close = getattr(service.payout_provider, "aclose", None)
        if callable(close):
            await close()


def get_task_dispatcher() -> TaskDispatcher:
    return TaskDispatcher()
