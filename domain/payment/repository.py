"""
支付仓储接口 - 定义支付与退款数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import List, Optional

from .entity import Payment, PaymentRefund


class PaymentRepository(ABC):
    """支付仓储抽象接口 - 只定义能做什么，不管怎么做（支付不提供删除）"""

    @abstractmethod
    async def create(self, payment: Payment) -> Payment:
        """创建支付记录"""
        pass

    @abstractmethod
    async def get_by_id(self, payment_id: int) -> Optional[Payment]:
        """根据ID获取支付"""
        pass

    @abstractmethod
    async def get_for_update(self, payment_id: int) -> Optional[Payment]:
        """加行锁读取支付（结算与创建退款时使用）"""
        pass

    @abstractmethod
    async def list_children(self, parent_payment_id: int) -> List[Payment]:
        """获取父支付的子支付，按ID升序"""
        pass

    @abstractmethod
    async def exists_active_by_order(self, order_id: int) -> bool:
        """订单是否已有未失败的支付"""
        pass

    @abstractmethod
    async def list_needing_settlement(self, *, limit: int, include_failed: bool = False) -> List[Payment]:
        """
        待结算支付：独立/子支付，状态为 paid 或 settlement_pending，
        且没有结算记录（include_failed 时包含结算失败的）。按ID升序。
        """
        pass

    @abstractmethod
    async def update(self, payment: Payment) -> Payment:
        """更新支付记录"""
        pass


class RefundRepository(ABC):
    """退款仓储抽象接口"""

    @abstractmethod
    async def create(self, refund: PaymentRefund) -> PaymentRefund:
        """创建退款记录"""
        pass

    @abstractmethod
    async def get_by_id(self, refund_id: int) -> Optional[PaymentRefund]:
        """根据ID获取退款"""
        pass

    @abstractmethod
    async def list_by_payment(self, payment_id: int) -> List[PaymentRefund]:
        """获取支付的退款列表"""
        pass

    @abstractmethod
    async def update(self, refund: PaymentRefund) -> PaymentRefund:
        """更新退款记录"""
        pass

    @abstractmethod
    async def get_total_refunded_amount(self, payment_id: int) -> Decimal:
        """获取支付的未失败退款总额（pending + processed）"""
        pass
