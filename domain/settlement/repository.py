"""
结算仓储接口
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import VendorSettlement


class SettlementRepository(ABC):
    """结算仓储抽象接口"""

    @abstractmethod
    async def create(self, settlement: VendorSettlement) -> VendorSettlement:
        """
        创建结算记录

        payment_id 已存在结算时抛出 SettlementAlreadyExistsException
        """
        pass

    @abstractmethod
    async def get_by_id(self, settlement_id: int) -> Optional[VendorSettlement]:
        pass

    @abstractmethod
    async def get_by_payment_id(self, payment_id: int) -> Optional[VendorSettlement]:
        """根据支付ID获取结算记录"""
        pass

    @abstractmethod
    async def update(self, settlement: VendorSettlement) -> VendorSettlement:
        pass
