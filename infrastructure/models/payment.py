"""
支付数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Index, Integer, JSON, Numeric, String, Text,
)

from .base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentModel(Base):
    """
    支付数据库模型（独立/父/子支付共表）

    这是数据库表的映射，不包含业务逻辑
    所有业务规则都在 domain.payment.entity.Payment 中
    """
    __tablename__ = "order_payments"

    id = Column(Integer, primary_key=True, index=True)

    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True, comment="订单ID")
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=True, index=True, comment="供应商ID，父支付为空")
    parent_payment_id = Column(
        Integer,
        ForeignKey("order_payments.id"),
        nullable=True,
        index=True,
        comment="父支付ID，仅子支付设置"
    )

    method = Column(String(30), nullable=False, comment="支付方式")
    payment_type = Column(String(20), nullable=False, default="standalone", comment="standalone/parent/child")
    status = Column(
        String(30),
        nullable=False,
        default="pending",
        index=True,
        comment="pending/authorized/paid/failed/refunded/partially_refunded/split_pending/settlement_pending"
    )

    # 金额信息（使用 Numeric 存储精确金额）
    amount = Column(Numeric(precision=15, scale=2), nullable=False, comment="支付金额")
    vendor_amount = Column(Numeric(precision=15, scale=2), nullable=True, comment="供应商应得金额")
    platform_fee = Column(Numeric(precision=15, scale=2), nullable=True, comment="平台费")
    commission_rate = Column(Numeric(precision=5, scale=4), nullable=True, comment="实际使用的佣金比例")
    currency = Column(String(3), nullable=False, default="USD", comment="货币代码 ISO-4217")

    is_split_payment = Column(Boolean, nullable=False, default=False)
    split_details = Column(JSON, nullable=True, comment="child_count/total_amount/currency/last_updated")

    transaction_id = Column(String(200), nullable=True, index=True, comment="网关交易号")
    processed_at = Column(DateTime(timezone=True), nullable=True, comment="支付完成时间")
    gateway_response = Column(JSON, nullable=True, comment="网关原始响应或错误载荷")
    failure_reason = Column(Text, nullable=True, comment="失败原因")

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (
        Index("ix_order_payments_order_status", "order_id", "status"),
        Index("ix_order_payments_type_status", "payment_type", "status"),
    )

    def __repr__(self):
        return (
            f"<PaymentModel(id={self.id}, order_id={self.order_id}, type='{self.payment_type}', "
            f"amount={self.amount}, status='{self.status}')>"
        )


class RefundModel(Base):
    """
    退款数据库模型

    退款针对单笔支付，记录退款明细
    """
    __tablename__ = "payment_refunds"

    id = Column(Integer, primary_key=True, index=True)
    payment_id = Column(
        Integer,
        ForeignKey("order_payments.id"),
        nullable=False,
        index=True,
        comment="关联的支付ID"
    )

    amount = Column(Numeric(precision=15, scale=2), nullable=False, comment="退款金额")
    currency = Column(String(3), nullable=False, default="USD", comment="货币代码")
    reason = Column(Text, nullable=True, comment="退款原因")
    status = Column(String(20), nullable=False, default="pending", index=True, comment="pending/processed/failed")

    transaction_id = Column(String(200), nullable=True, comment="网关退款交易号")
    gateway_response = Column(JSON, nullable=True)
    failure_reason = Column(Text, nullable=True, comment="失败原因")
    processed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (
        Index("ix_payment_refunds_payment_status", "payment_id", "status"),
    )

    def __repr__(self):
        return (
            f"<RefundModel(id={self.id}, payment_id={self.payment_id}, "
            f"amount={self.amount}, status='{self.status}')>"
        )
