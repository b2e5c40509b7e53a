"""
订单仓储接口 - 订单由外部结账流程写入，这里只读取与更新状态
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import Order


class OrderRepository(ABC):
    """订单仓储抽象接口"""

    @abstractmethod
    async def create(self, order: Order) -> Order:
        """创建订单（含供应商子订单、订单行与税费）"""
        pass

    @abstractmethod
    async def get_by_id(self, order_id: int) -> Optional[Order]:
        """根据ID获取订单（含供应商子订单）"""
        pass

    @abstractmethod
    async def update(self, order: Order) -> Order:
        """更新订单与子订单状态"""
        pass

    @abstractmethod
    async def get_for_update(self, order_id: int) -> Optional[Order]:
        """加行锁读取订单（创建支付时使用，串行化同一订单的并发支付）"""
        pass
