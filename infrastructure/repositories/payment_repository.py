"""
支付仓储实现 - 使用SQLAlchemy实现数据访问
"""
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import PaymentNotFoundException, RefundNotFoundException
from domain.common.money import quantize
from domain.payment.entity import (
    Payment,
    PaymentMethod,
    PaymentRefund,
    PaymentStatus,
    PaymentType,
    RefundStatus,
    SETTLEABLE_STATUSES,
)
from domain.payment.repository import PaymentRepository, RefundRepository
from domain.settlement.entity import SettlementStatus
from infrastructure.models.payment import PaymentModel, RefundModel
from infrastructure.models.settlement import VendorSettlementModel


logger = get_logger(__name__)


def _decimal(value, currency: str) -> Optional[Decimal]:
    if value is None:
        return None
    return quantize(Decimal(str(value)), currency)


class SQLAlchemyPaymentRepository(PaymentRepository):
    """支付仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentModel) -> Payment:
        """将数据库模型转换为领域实体"""
        return Payment(
            id=model.id,
            order_id=model.order_id,
            amount=_decimal(model.amount, model.currency),
            currency=model.currency,
            method=PaymentMethod(model.method),
            payment_type=PaymentType(model.payment_type),
            status=PaymentStatus(model.status),
            vendor_id=model.vendor_id,
            parent_payment_id=model.parent_payment_id,
            vendor_amount=_decimal(model.vendor_amount, model.currency),
            platform_fee=_decimal(model.platform_fee, model.currency),
            commission_rate=Decimal(str(model.commission_rate)) if model.commission_rate is not None else None,
            is_split_payment=bool(model.is_split_payment),
            split_details=dict(model.split_details) if model.split_details else None,
            transaction_id=model.transaction_id,
            processed_at=model.processed_at,
            gateway_response=dict(model.gateway_response) if model.gateway_response else None,
            failure_reason=model.failure_reason,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: Payment) -> PaymentModel:
        """将领域实体转换为数据库模型"""
        return PaymentModel(
            id=entity.id,
            order_id=entity.order_id,
            vendor_id=entity.vendor_id,
            parent_payment_id=entity.parent_payment_id,
            method=entity.method.value,
            payment_type=entity.payment_type.value,
            status=entity.status.value,
            amount=entity.amount,
            vendor_amount=entity.vendor_amount,
            platform_fee=entity.platform_fee,
            commission_rate=entity.commission_rate,
            currency=entity.currency,
            is_split_payment=entity.is_split_payment,
            split_details=entity.split_details,
            transaction_id=entity.transaction_id,
            processed_at=entity.processed_at,
            gateway_response=entity.gateway_response,
            failure_reason=entity.failure_reason,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )

    async def create(self, payment: Payment) -> Payment:
        """创建支付记录"""
        db_payment = self._to_model(payment)
        self.session.add(db_payment)
        await self.session.flush()
        await self.session.refresh(db_payment)
        logger.debug(
            "payment_row_created",
            payment_id=db_payment.id,
            order_id=db_payment.order_id,
            payment_type=db_payment.payment_type,
        )
        return self._to_entity(db_payment)

    async def get_by_id(self, payment_id: int) -> Optional[Payment]:
        """根据ID获取支付"""
        db_payment = await self.session.get(PaymentModel, payment_id)
        return self._to_entity(db_payment) if db_payment else None

    async def get_for_update(self, payment_id: int) -> Optional[Payment]:
        """加行锁读取支付（SQLite 会忽略 FOR UPDATE）"""
        result = await self.session.execute(
            select(PaymentModel)
            .where(PaymentModel.id == payment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        db_payment = result.scalar_one_or_none()
        return self._to_entity(db_payment) if db_payment else None

    async def list_children(self, parent_payment_id: int) -> List[Payment]:
        result = await self.session.execute(
            select(PaymentModel)
            .where(PaymentModel.parent_payment_id == parent_payment_id)
            .order_by(PaymentModel.id)
        )
        return [self._to_entity(p) for p in result.scalars().all()]

    async def exists_active_by_order(self, order_id: int) -> bool:
        result = await self.session.execute(
            select(func.count(PaymentModel.id)).where(
                PaymentModel.order_id == order_id,
                PaymentModel.status != PaymentStatus.FAILED.value,
            )
        )
        return (result.scalar() or 0) > 0

    async def list_needing_settlement(self, *, limit: int, include_failed: bool = False) -> List[Payment]:
        """独立/子支付，已到账且没有结算记录（或结算失败且 include_failed）"""
        settlement_cond = VendorSettlementModel.id.is_(None)
        if include_failed:
            settlement_cond = or_(settlement_cond, VendorSettlementModel.status == SettlementStatus.FAILED.value)

        query = (
            select(PaymentModel)
            .outerjoin(VendorSettlementModel, VendorSettlementModel.payment_id == PaymentModel.id)
            .where(
                and_(
                    PaymentModel.payment_type != PaymentType.PARENT.value,
                    PaymentModel.status.in_([s.value for s in SETTLEABLE_STATUSES]),
                    settlement_cond,
                )
            )
            .order_by(PaymentModel.id)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return [self._to_entity(p) for p in result.scalars().all()]

    async def update(self, payment: Payment) -> Payment:
        """更新支付记录（支付永不删除）"""
        db_payment = await self.session.get(PaymentModel, payment.id)
        if not db_payment:
            raise PaymentNotFoundException(payment.id)

        db_payment.status = payment.status.value
        db_payment.method = payment.method.value
        db_payment.vendor_amount = payment.vendor_amount
        db_payment.platform_fee = payment.platform_fee
        db_payment.commission_rate = payment.commission_rate
        db_payment.split_details = payment.split_details
        db_payment.transaction_id = payment.transaction_id
        db_payment.processed_at = payment.processed_at
        db_payment.gateway_response = payment.gateway_response
        db_payment.failure_reason = payment.failure_reason
        db_payment.updated_at = payment.updated_at

        await self.session.flush()
        await self.session.refresh(db_payment)

        logger.debug("payment_row_updated", payment_id=db_payment.id, status=db_payment.status)
        return self._to_entity(db_payment)


class SQLAlchemyRefundRepository(RefundRepository):
    """退款仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: RefundModel) -> PaymentRefund:
        return PaymentRefund(
            id=model.id,
            payment_id=model.payment_id,
            amount=_decimal(model.amount, model.currency),
            currency=model.currency,
            status=RefundStatus(model.status),
            reason=model.reason,
            transaction_id=model.transaction_id,
            gateway_response=dict(model.gateway_response) if model.gateway_response else None,
            failure_reason=model.failure_reason,
            processed_at=model.processed_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def create(self, refund: PaymentRefund) -> PaymentRefund:
        db_refund = RefundModel(
            payment_id=refund.payment_id,
            amount=refund.amount,
            currency=refund.currency,
            reason=refund.reason,
            status=refund.status.value,
            transaction_id=refund.transaction_id,
            gateway_response=refund.gateway_response,
            failure_reason=refund.failure_reason,
            processed_at=refund.processed_at,
            created_at=refund.created_at,
            updated_at=refund.updated_at,
        )
        self.session.add(db_refund)
        await self.session.flush()
        await self.session.refresh(db_refund)
        return self._to_entity(db_refund)

    async def get_by_id(self, refund_id: int) -> Optional[PaymentRefund]:
        db_refund = await self.session.get(RefundModel, refund_id)
        return self._to_entity(db_refund) if db_refund else None

    async def list_by_payment(self, payment_id: int) -> List[PaymentRefund]:
        result = await self.session.execute(
            select(RefundModel).where(RefundModel.payment_id == payment_id).order_by(RefundModel.id)
        )
        return [self._to_entity(r) for r in result.scalars().all()]

    async def update(self, refund: PaymentRefund) -> PaymentRefund:
        db_refund = await self.session.get(RefundModel, refund.id)
        if not db_refund:
            raise RefundNotFoundException(refund.id)

        db_refund.status = refund.status.value
        db_refund.transaction_id = refund.transaction_id
        db_refund.gateway_response = refund.gateway_response
        db_refund.failure_reason = refund.failure_reason
        db_refund.processed_at = refund.processed_at
        db_refund.updated_at = refund.updated_at

        await self.session.flush()
        await self.session.refresh(db_refund)
        return self._to_entity(db_refund)

    async def get_total_refunded_amount(self, payment_id: int) -> Decimal:
        """未失败退款（pending + processed）总额"""
        result = await self.session.execute(
            select(func.coalesce(func.sum(RefundModel.amount), 0)).where(
                RefundModel.payment_id == payment_id,
                RefundModel.status != RefundStatus.FAILED.value,
            )
        )
        return Decimal(str(result.scalar() or 0))
