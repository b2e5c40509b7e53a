"""
订单领域实体 - Order 聚合根及其供应商子订单、订单行、税费与佣金

订单由外部结账流程创建；本模块只负责状态流转与金额事实的校验。
"""
from __future__ import annotations

import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException, OrderStatusTransitionException
from domain.common.money import money_sum, quantize


class OrderStatus(str, Enum):
    """订单状态"""
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class VendorOrderStatus(str, Enum):
    """供应商子订单状态"""
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"
    ON_HOLD = "on_hold"


class CommissionType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _random_suffix(length: int = 6) -> str:
    alphabet = string.ascii_uppercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


def generate_order_number(prefix: str = "ORD") -> str:
    """生成订单号，如 ORD-20250101-AB12CD"""
    return f"{prefix}-{datetime.now(timezone.utc):%Y%m%d}-{_random_suffix()}"


@dataclass(frozen=True)
class OrderItem:
    """订单行；写入后不可变，更正通过新订单行或退款完成"""

    id: Optional[int]
    vendor_order_id: Optional[int]
    product_id: int
    quantity: int
    price: Decimal
    variation_id: Optional[int] = None
    subtotal: Optional[Decimal] = None
    is_digital: bool = False
    download_url: Optional[str] = None
    download_expiry: Optional[datetime] = None
    is_returnable: bool = True
    return_by_date: Optional[datetime] = None

    def __post_init__(self):
        if self.quantity <= 0:
            raise DomainValidationException(f"数量必须大于0: {self.quantity}", field="quantity")
        if self.price < 0:
            raise DomainValidationException(f"单价不能为负: {self.price}", field="price")
        if self.subtotal is None:
            object.__setattr__(self, "subtotal", self.price * self.quantity)


@dataclass(frozen=True)
class OrderTax:
    """外部税务引擎计算出的税费事实（订单级或子订单级）"""

    id: Optional[int]
    order_id: Optional[int]
    tax_name: str
    tax_rate: Decimal
    tax_amount: Decimal
    vendor_order_id: Optional[int] = None
    is_inclusive: bool = False
    tax_type: Optional[str] = None
    tax_id: Optional[str] = None


@dataclass(frozen=True)
class OrderCommission:
    """子订单的平台佣金事实"""

    id: Optional[int]
    vendor_order_id: Optional[int]
    vendor_id: int
    amount: Decimal
    rate: Decimal
    commission_type: CommissionType = CommissionType.PERCENTAGE
    is_paid: bool = False
    paid_date: Optional[datetime] = None


@dataclass
class VendorOrder:
    """供应商子订单 - 一个订单中属于单个供应商的部分"""

    id: Optional[int]
    order_id: Optional[int]
    vendor_id: int
    subtotal: Decimal
    total: Decimal
    tax: Decimal = field(default_factory=lambda: Decimal("0"))
    commission_amount: Decimal = field(default_factory=lambda: Decimal("0"))
    vendor_order_number: str = field(default_factory=lambda: generate_order_number("VORD"))
    status: VendorOrderStatus = VendorOrderStatus.PENDING
    fulfillment_type: Optional[str] = None
    vendor_notes: Optional[dict] = None
    items: list[OrderItem] = field(default_factory=list)
    taxes: list[OrderTax] = field(default_factory=list)
    commission: Optional[OrderCommission] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    def __post_init__(self):
        if self.total < 0:
            raise DomainValidationException(f"子订单金额不能为负: {self.total}", field="total")
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.deleted_at = _ensure_utc(self.deleted_at)

    def _transition(self, allowed: set[VendorOrderStatus], target: VendorOrderStatus) -> None:
        if self.status not in allowed:
            raise OrderStatusTransitionException(self.status.value, target.value)
        self.status = target
        self.updated_at = datetime.now(timezone.utc)

    def mark_processing(self) -> None:
        self._transition({VendorOrderStatus.PENDING, VendorOrderStatus.ON_HOLD}, VendorOrderStatus.PROCESSING)

    def mark_shipped(self) -> None:
        self._transition({VendorOrderStatus.PROCESSING}, VendorOrderStatus.SHIPPED)

    def mark_delivered(self) -> None:
        self._transition({VendorOrderStatus.SHIPPED}, VendorOrderStatus.DELIVERED)

    def put_on_hold(self) -> None:
        self._transition({VendorOrderStatus.PENDING, VendorOrderStatus.PROCESSING}, VendorOrderStatus.ON_HOLD)

    def cancel(self) -> None:
        self._transition(
            {VendorOrderStatus.PENDING, VendorOrderStatus.PROCESSING, VendorOrderStatus.ON_HOLD},
            VendorOrderStatus.CANCELLED,
        )


@dataclass
class Order:
    """
    订单聚合根

    业务规则：
    1. 创建时 total == subtotal + tax
    2. 已发货/已送达的订单不能取消
    3. 只做软删除
    """

    id: Optional[int]
    user_id: int
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    currency: str = "USD"
    order_number: str = field(default_factory=generate_order_number)
    status: OrderStatus = OrderStatus.PENDING
    vendor_orders: list[VendorOrder] = field(default_factory=list)
    taxes: list[OrderTax] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    def __post_init__(self):
        self.currency = (self.currency or "").upper()
        if len(self.currency) != 3 or not self.currency.isalpha():
            raise DomainValidationException(f"无效的货币代码: {self.currency}", field="currency")
        if self.id is None:
            self._validate_totals()
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.deleted_at = _ensure_utc(self.deleted_at)

    def _validate_totals(self) -> None:
        """业务规则：创建时总额必须等于小计加税"""
        expected = quantize(self.subtotal + self.tax, self.currency)
        if quantize(self.total, self.currency) != expected:
            raise DomainValidationException(
                f"订单总额 {self.total} 不等于小计 {self.subtotal} + 税 {self.tax}",
                field="total",
            )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def vendor_ids(self) -> list[int]:
        """参与本订单的供应商（去重，按ID升序）"""
        return sorted({vo.vendor_id for vo in self.vendor_orders})

    @property
    def is_multi_vendor(self) -> bool:
        return len(self.vendor_ids()) > 1

    def vendor_total(self, vendor_id: int) -> Decimal:
        return money_sum((vo.total for vo in self.vendor_orders if vo.vendor_id == vendor_id), self.currency)

    def vendor_orders_total(self) -> Decimal:
        return money_sum((vo.total for vo in self.vendor_orders), self.currency)

    def _set_status(self, target: OrderStatus) -> None:
        self.status = target
        self.updated_at = datetime.now(timezone.utc)

    def mark_processing(self) -> None:
        if self.status not in (OrderStatus.PENDING, OrderStatus.PROCESSING):
            raise OrderStatusTransitionException(self.status.value, OrderStatus.PROCESSING.value)
        self._set_status(OrderStatus.PROCESSING)

    def mark_shipped(self) -> None:
        if self.status != OrderStatus.PROCESSING:
            raise OrderStatusTransitionException(self.status.value, OrderStatus.SHIPPED.value)
        self._set_status(OrderStatus.SHIPPED)

    def mark_delivered(self) -> None:
        if self.status != OrderStatus.SHIPPED:
            raise OrderStatusTransitionException(self.status.value, OrderStatus.DELIVERED.value)
        self._set_status(OrderStatus.DELIVERED)

    def cancel(self) -> None:
        """业务规则：已发货或已送达的订单不能取消"""
        if self.status in (OrderStatus.SHIPPED, OrderStatus.DELIVERED):
            raise OrderStatusTransitionException(self.status.value, OrderStatus.CANCELLED.value)
        self._set_status(OrderStatus.CANCELLED)

    def soft_delete(self) -> None:
        now = datetime.now(timezone.utc)
        self.deleted_at = now
        self.updated_at = now
        for vo in self.vendor_orders:
            vo.deleted_at = now
