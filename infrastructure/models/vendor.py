"""
供应商数据库模型（读模型，供应商资料由外部系统维护）
"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, Numeric, String

from .base import Base


class VendorModel(Base):
    __tablename__ = "vendors"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    commission_rate = Column(Numeric(precision=5, scale=4), nullable=True, comment="佣金比例，空则使用默认值")
    preferred_payment_method = Column(String(50), nullable=True)
    preferred_payout_method = Column(String(50), nullable=True)
    payout_account = Column(String(200), nullable=True, comment="打款账户引用（如 Stripe acct_xxx）")
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
