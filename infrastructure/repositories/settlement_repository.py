"""
结算仓储实现 - 使用SQLAlchemy实现数据访问
"""
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import BusinessException, SettlementAlreadyExistsException
from domain.settlement.entity import SettlementStatus, VendorSettlement
from domain.settlement.repository import SettlementRepository
from infrastructure.models.settlement import VendorSettlementModel
from shared.codes import BusinessCode


logger = get_logger(__name__)


class SQLAlchemySettlementRepository(SettlementRepository):
    """结算仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: VendorSettlementModel) -> VendorSettlement:
        return VendorSettlement(
            id=model.id,
            vendor_id=model.vendor_id,
            payment_id=model.payment_id,
            amount=Decimal(str(model.amount)),
            currency=model.currency,
            method=model.method,
            status=SettlementStatus(model.status),
            transaction_id=model.transaction_id,
            processed_at=model.processed_at,
            notes=model.notes,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def create(self, settlement: VendorSettlement) -> VendorSettlement:
        """
        创建结算记录

        插入放在 SAVEPOINT 中：唯一约束冲突只回滚保存点，外层事务仍可用
        """
        db_settlement = VendorSettlementModel(
            vendor_id=settlement.vendor_id,
            payment_id=settlement.payment_id,
            amount=settlement.amount,
            currency=settlement.currency,
            method=settlement.method,
            status=settlement.status.value,
            transaction_id=settlement.transaction_id,
            processed_at=settlement.processed_at,
            notes=settlement.notes,
            created_at=settlement.created_at,
            updated_at=settlement.updated_at,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(db_settlement)
                await self.session.flush()
        except IntegrityError as e:
            msg = str(e).lower()
            if "payment_id" in msg or "uq_vendor_settlements_payment_id" in msg or "unique" in msg:
                logger.warning("settlement_create_conflict", payment_id=settlement.payment_id)
                raise SettlementAlreadyExistsException(settlement.payment_id) from e
            raise BusinessException(
                code=BusinessCode.DATABASE_ERROR,
                message="Failed to create settlement",
                error_type="DatabaseError",
                details={"payment_id": settlement.payment_id},
            ) from e
        await self.session.refresh(db_settlement)
        return self._to_entity(db_settlement)

    async def get_by_id(self, settlement_id: int) -> Optional[VendorSettlement]:
        model = await self.session.get(VendorSettlementModel, settlement_id)
        return self._to_entity(model) if model else None

    async def get_by_payment_id(self, payment_id: int) -> Optional[VendorSettlement]:
        result = await self.session.execute(
            select(VendorSettlementModel).where(VendorSettlementModel.payment_id == payment_id)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def update(self, settlement: VendorSettlement) -> VendorSettlement:
        model = await self.session.get(VendorSettlementModel, settlement.id)
        if not model:
            raise BusinessException(
                code=BusinessCode.NOT_FOUND,
                message="Settlement not found",
                error_type="SettlementNotFound",
                details={"settlement_id": settlement.id},
            )
        model.status = settlement.status.value
        model.method = settlement.method
        model.transaction_id = settlement.transaction_id
        model.processed_at = settlement.processed_at
        model.notes = settlement.notes
        model.updated_at = settlement.updated_at

        await self.session.flush()
        await self.session.refresh(model)
        return self._to_entity(model)
