"""
供应商仓储实现（只读）
"""
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.vendor.entity import Vendor
from domain.vendor.repository import VendorRepository
from infrastructure.models.vendor import VendorModel


class SQLAlchemyVendorRepository(VendorRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _to_entity(model: VendorModel) -> Vendor:
        return Vendor(
            id=model.id,
            name=model.name,
            commission_rate=Decimal(str(model.commission_rate)) if model.commission_rate is not None else None,
            preferred_payment_method=model.preferred_payment_method,
            preferred_payout_method=model.preferred_payout_method,
            payout_account=model.payout_account,
        )

    async def get_by_id(self, vendor_id: int) -> Optional[Vendor]:
        model = await self.session.get(VendorModel, vendor_id)
        return self._to_entity(model) if model else None

    async def get_many(self, vendor_ids: Iterable[int]) -> dict[int, Vendor]:
        ids = list(set(vendor_ids))
        if not ids:
            return {}
        result = await self.session.execute(select(VendorModel).where(VendorModel.id.in_(ids)))
        return {m.id: self._to_entity(m) for m in result.scalars().all()}
