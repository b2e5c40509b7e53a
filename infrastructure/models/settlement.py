"""
供应商结算数据库模型
"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint

from .base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VendorSettlementModel(Base):
    """结算表；payment_id 唯一约束是并发结算的最终裁决"""
    __tablename__ = "vendor_settlements"

    id = Column(Integer, primary_key=True, index=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=False, index=True)
    payment_id = Column(Integer, ForeignKey("order_payments.id"), nullable=False, comment="结算的支付ID（唯一）")

    amount = Column(Numeric(precision=15, scale=2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    method = Column(String(50), nullable=False, comment="打款方式")
    status = Column(String(20), nullable=False, default="pending", index=True, comment="pending/processed/failed")

    transaction_id = Column(String(200), nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("payment_id", name="uq_vendor_settlements_payment_id"),
    )

    def __repr__(self):
        return (
            f"<VendorSettlementModel(id={self.id}, payment_id={self.payment_id}, "
            f"amount={self.amount}, status='{self.status}')>"
        )
