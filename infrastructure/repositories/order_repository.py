"""
订单仓储实现 - 使用SQLAlchemy实现数据访问
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import OrderNotFoundException
from domain.common.money import quantize
from domain.order.entity import (
    CommissionType,
    Order,
    OrderCommission,
    OrderItem,
    OrderStatus,
    OrderTax,
    VendorOrder,
    VendorOrderStatus,
)
from domain.order.repository import OrderRepository
from infrastructure.models.order import (
    OrderCommissionModel,
    OrderItemModel,
    OrderModel,
    OrderTaxModel,
    VendorOrderModel,
)


logger = get_logger(__name__)


def _dec(value) -> Decimal:
    return Decimal(str(value)) if value is not None else Decimal("0")


class SQLAlchemyOrderRepository(OrderRepository):
    """订单仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _tax_to_entity(model: OrderTaxModel) -> OrderTax:
        return OrderTax(
            id=model.id,
            order_id=model.order_id,
            vendor_order_id=model.vendor_order_id,
            tax_name=model.tax_name,
            tax_rate=_dec(model.tax_rate),
            tax_amount=_dec(model.tax_amount),
            is_inclusive=bool(model.is_inclusive),
            tax_type=model.tax_type,
            tax_id=model.tax_id,
        )

    def _vendor_order_to_entity(self, model: VendorOrderModel, currency: str) -> VendorOrder:
        commission = None
        if model.commission is not None:
            c = model.commission
            commission = OrderCommission(
                id=c.id,
                vendor_order_id=c.vendor_order_id,
                vendor_id=c.vendor_id,
                amount=quantize(_dec(c.amount), currency),
                rate=_dec(c.rate),
                commission_type=CommissionType(c.commission_type),
                is_paid=bool(c.is_paid),
                paid_date=c.paid_date,
            )
        return VendorOrder(
            id=model.id,
            order_id=model.order_id,
            vendor_id=model.vendor_id,
            vendor_order_number=model.vendor_order_number,
            subtotal=quantize(_dec(model.subtotal), currency),
            tax=quantize(_dec(model.tax), currency),
            commission_amount=quantize(_dec(model.commission_amount), currency),
            total=quantize(_dec(model.total), currency),
            status=VendorOrderStatus(model.status),
            fulfillment_type=model.fulfillment_type,
            vendor_notes=model.vendor_notes,
            items=[
                OrderItem(
                    id=i.id,
                    vendor_order_id=i.vendor_order_id,
                    product_id=i.product_id,
                    variation_id=i.variation_id,
                    quantity=i.quantity,
                    price=_dec(i.price),
                    subtotal=_dec(i.subtotal),
                    is_digital=bool(i.is_digital),
                    download_url=i.download_url,
                    download_expiry=i.download_expiry,
                    is_returnable=bool(i.is_returnable),
                    return_by_date=i.return_by_date,
                )
                for i in model.items
            ],
            taxes=[self._tax_to_entity(t) for t in model.taxes],
            commission=commission,
            created_at=model.created_at,
            updated_at=model.updated_at,
            deleted_at=model.deleted_at,
        )

    def _to_entity(self, model: OrderModel) -> Order:
        """将数据库模型转换为领域实体"""
        return Order(
            id=model.id,
            user_id=model.user_id,
            order_number=model.order_number,
            subtotal=quantize(_dec(model.subtotal), model.currency),
            tax=quantize(_dec(model.tax), model.currency),
            total=quantize(_dec(model.total), model.currency),
            currency=model.currency,
            status=OrderStatus(model.status),
            vendor_orders=[self._vendor_order_to_entity(vo, model.currency) for vo in model.vendor_orders],
            taxes=[self._tax_to_entity(t) for t in model.taxes],
            created_at=model.created_at,
            updated_at=model.updated_at,
            deleted_at=model.deleted_at,
        )

    async def _load(self, order_id: int, *, for_update: bool = False) -> Optional[OrderModel]:
        stmt = select(OrderModel).where(OrderModel.id == order_id)
        if for_update:
            # 子订单与税费走 selectin，锁只落在订单行上
            stmt = stmt.with_for_update(of=OrderModel)
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def create(self, order: Order) -> Order:
        """创建订单（含子订单、订单行、税费与佣金）"""
        db_order = OrderModel(
            user_id=order.user_id,
            order_number=order.order_number,
            subtotal=order.subtotal,
            tax=order.tax,
            total=order.total,
            currency=order.currency,
            status=order.status.value,
            created_at=order.created_at or datetime.now(timezone.utc),
            updated_at=order.updated_at or datetime.now(timezone.utc),
        )
        self.session.add(db_order)
        await self.session.flush()

        for tax in order.taxes:
            self.session.add(self._tax_model(tax, db_order.id, None))

        for vo in order.vendor_orders:
            db_vo = VendorOrderModel(
                order_id=db_order.id,
                vendor_id=vo.vendor_id,
                vendor_order_number=vo.vendor_order_number,
                subtotal=vo.subtotal,
                tax=vo.tax,
                commission_amount=vo.commission_amount,
                total=vo.total,
                status=vo.status.value,
                fulfillment_type=vo.fulfillment_type,
                vendor_notes=vo.vendor_notes,
            )
            self.session.add(db_vo)
            await self.session.flush()
            for item in vo.items:
                self.session.add(OrderItemModel(
                    vendor_order_id=db_vo.id,
                    product_id=item.product_id,
                    variation_id=item.variation_id,
                    quantity=item.quantity,
                    price=item.price,
                    subtotal=item.subtotal,
                    is_digital=item.is_digital,
                    download_url=item.download_url,
                    download_expiry=item.download_expiry,
                    is_returnable=item.is_returnable,
                    return_by_date=item.return_by_date,
                ))
            for tax in vo.taxes:
                self.session.add(self._tax_model(tax, db_order.id, db_vo.id))
            if vo.commission is not None:
                self.session.add(OrderCommissionModel(
                    vendor_order_id=db_vo.id,
                    vendor_id=vo.commission.vendor_id,
                    amount=vo.commission.amount,
                    rate=vo.commission.rate,
                    commission_type=vo.commission.commission_type.value,
                    is_paid=vo.commission.is_paid,
                    paid_date=vo.commission.paid_date,
                ))

        await self.session.flush()
        logger.debug("order_row_created", order_id=db_order.id, order_number=db_order.order_number)
        return self._to_entity(await self._load(db_order.id))

    @staticmethod
    def _tax_model(tax: OrderTax, order_id: int, vendor_order_id: Optional[int]) -> OrderTaxModel:
        return OrderTaxModel(
            order_id=order_id,
            vendor_order_id=vendor_order_id,
            tax_name=tax.tax_name,
            tax_rate=tax.tax_rate,
            tax_amount=tax.tax_amount,
            is_inclusive=tax.is_inclusive,
            tax_type=tax.tax_type,
            tax_id=tax.tax_id,
        )

    async def get_by_id(self, order_id: int) -> Optional[Order]:
        db_order = await self._load(order_id)
        return self._to_entity(db_order) if db_order else None

    async def get_for_update(self, order_id: int) -> Optional[Order]:
        """加行锁读取订单（SQLite 会忽略 FOR UPDATE）"""
        db_order = await self._load(order_id, for_update=True)
        return self._to_entity(db_order) if db_order else None

    async def update(self, order: Order) -> Order:
        """更新订单与子订单状态（金额事实不可修改）"""
        db_order = await self._load(order.id)
        if not db_order:
            raise OrderNotFoundException(order.id)

        db_order.status = order.status.value
        db_order.updated_at = order.updated_at
        db_order.deleted_at = order.deleted_at

        by_id = {vo.id: vo for vo in order.vendor_orders}
        for db_vo in db_order.vendor_orders:
            vo = by_id.get(db_vo.id)
            if vo is None:
                continue
            db_vo.status = vo.status.value
            db_vo.updated_at = vo.updated_at
            db_vo.deleted_at = vo.deleted_at

        await self.session.flush()
        return self._to_entity(await self._load(order.id))
