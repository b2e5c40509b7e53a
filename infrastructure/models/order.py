"""
订单数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，业务规则在 domain.order.entity 中
"""
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Index, Integer, JSON, Numeric, String,
)
from sqlalchemy.orm import relationship

from .base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderModel(Base):
    """订单表"""
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True, comment="下单用户ID")
    order_number = Column(String(32), unique=True, nullable=False, comment="订单号 ORD-YYYYMMDD-XXXXXX")

    subtotal = Column(Numeric(precision=15, scale=2), nullable=False, comment="小计")
    tax = Column(Numeric(precision=15, scale=2), nullable=False, default=0, comment="税额")
    total = Column(Numeric(precision=15, scale=2), nullable=False, comment="总额")
    currency = Column(String(3), nullable=False, default="USD", comment="货币代码 ISO-4217")

    status = Column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
        comment="订单状态: pending/processing/shipped/delivered/cancelled"
    )

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True, comment="软删除时间")

    vendor_orders = relationship(
        "VendorOrderModel", back_populates="order", lazy="selectin", order_by="VendorOrderModel.id"
    )
    taxes = relationship(
        "OrderTaxModel",
        primaryjoin="and_(OrderTaxModel.order_id == OrderModel.id, OrderTaxModel.vendor_order_id.is_(None))",
        lazy="selectin",
        viewonly=True,
    )

    def __repr__(self):
        return f"<OrderModel(id={self.id}, order_number='{self.order_number}', status='{self.status}')>"


class VendorOrderModel(Base):
    """供应商子订单表"""
    __tablename__ = "vendor_orders"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=False, index=True)
    vendor_order_number = Column(String(32), unique=True, nullable=False, comment="子订单号 VORD-YYYYMMDD-XXXXXX")

    subtotal = Column(Numeric(precision=15, scale=2), nullable=False)
    tax = Column(Numeric(precision=15, scale=2), nullable=False, default=0)
    commission_amount = Column(Numeric(precision=15, scale=2), nullable=False, default=0)
    total = Column(Numeric(precision=15, scale=2), nullable=False)

    status = Column(String(20), nullable=False, default="pending", index=True)
    fulfillment_type = Column(String(50), nullable=True)
    vendor_notes = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    order = relationship("OrderModel", back_populates="vendor_orders")
    items = relationship("OrderItemModel", lazy="selectin", order_by="OrderItemModel.id")
    taxes = relationship("OrderTaxModel", lazy="selectin", order_by="OrderTaxModel.id")
    commission = relationship("OrderCommissionModel", lazy="selectin", uselist=False)

    __table_args__ = (
        Index("ix_vendor_orders_order_vendor", "order_id", "vendor_id"),
    )


class OrderItemModel(Base):
    """订单行表（写入后不可变）"""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    vendor_order_id = Column(Integer, ForeignKey("vendor_orders.id"), nullable=False, index=True)
    product_id = Column(Integer, nullable=False, index=True)
    variation_id = Column(Integer, nullable=True)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(precision=15, scale=2), nullable=False)
    subtotal = Column(Numeric(precision=15, scale=2), nullable=False)
    is_digital = Column(Boolean, nullable=False, default=False)
    download_url = Column(String(500), nullable=True)
    download_expiry = Column(DateTime(timezone=True), nullable=True)
    is_returnable = Column(Boolean, nullable=False, default=True)
    return_by_date = Column(DateTime(timezone=True), nullable=True)


class OrderTaxModel(Base):
    """税费表（订单级或子订单级）"""
    __tablename__ = "order_taxes"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    vendor_order_id = Column(Integer, ForeignKey("vendor_orders.id"), nullable=True, index=True)
    tax_name = Column(String(100), nullable=False)
    tax_rate = Column(Numeric(precision=7, scale=4), nullable=False)
    tax_amount = Column(Numeric(precision=15, scale=2), nullable=False)
    is_inclusive = Column(Boolean, nullable=False, default=False)
    tax_type = Column(String(50), nullable=True)
    tax_id = Column(String(100), nullable=True)


class OrderCommissionModel(Base):
    """子订单佣金表"""
    __tablename__ = "order_commissions"

    id = Column(Integer, primary_key=True, index=True)
    vendor_order_id = Column(Integer, ForeignKey("vendor_orders.id"), nullable=False, unique=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=False, index=True)
    amount = Column(Numeric(precision=15, scale=2), nullable=False)
    rate = Column(Numeric(precision=7, scale=4), nullable=False)
    commission_type = Column(String(20), nullable=False, default="percentage", comment="percentage/fixed")
    is_paid = Column(Boolean, nullable=False, default=False)
    paid_date = Column(DateTime(timezone=True), nullable=True)
