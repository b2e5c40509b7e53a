"""
支付领域实体 - 支付图（独立/父/子支付）与退款
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Optional

from domain.common.exceptions import (
    DomainValidationException,
    InvalidPaymentTransitionException,
    PaymentInvariantError,
)
from domain.common.money import money_sum, quantize


class PaymentStatus(str, Enum):
    """支付状态枚举"""
    PENDING = "pending"                          # 待支付
    AUTHORIZED = "authorized"                    # 已授权
    PAID = "paid"                                # 已支付
    FAILED = "failed"                            # 支付失败
    REFUNDED = "refunded"                        # 已全额退款
    PARTIALLY_REFUNDED = "partially_refunded"    # 部分退款
    SPLIT_PENDING = "split_pending"              # 父支付等待网关结果
    SETTLEMENT_PENDING = "settlement_pending"    # 已支付，等待结算


class PaymentType(str, Enum):
    STANDALONE = "standalone"
    PARENT = "parent"
    CHILD = "child"


class PaymentMethod(str, Enum):
    CREDIT_CARD = "credit_card"
    PAYPAL = "paypal"
    STRIPE = "stripe"
    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"
    VENDOR_CREDIT = "vendor_credit"
    SPLIT_PAYMENT = "split_payment"


class RefundStatus(str, Enum):
    """退款状态枚举"""
    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"


# 资金已到账（可退款）的状态
CAPTURED_STATUSES = frozenset({
    PaymentStatus.PAID,
    PaymentStatus.SETTLEMENT_PENDING,
    PaymentStatus.PARTIALLY_REFUNDED,
})

# 可进入结算扫描的状态
SETTLEABLE_STATUSES = frozenset({PaymentStatus.PAID, PaymentStatus.SETTLEMENT_PENDING})

# 资金已经移动，不能再标记为失败
_NO_FAIL_STATUSES = frozenset({
    PaymentStatus.PAID,
    PaymentStatus.SETTLEMENT_PENDING,
    PaymentStatus.REFUNDED,
    PaymentStatus.PARTIALLY_REFUNDED,
})


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class Payment:
    """
    支付聚合根 - 独立支付、父支付（多供应商拆分）与子支付共用一个实体

    业务规则：
    1. 子支付必须指向父支付；父支付不携带供应商金额/平台费，也不参与结算
    2. 父支付的所有子支付金额之和等于父支付金额
    3. 独立/子支付一旦计算：vendor_amount + platform_fee == amount
    4. 只有父支付可以创建子支付
    5. 状态单调推进，失败/已退款的支付不会再变为已支付
    """

    id: Optional[int]
    order_id: int
    amount: Decimal
    currency: str
    method: PaymentMethod
    payment_type: PaymentType = PaymentType.STANDALONE
    status: PaymentStatus = PaymentStatus.PENDING
    vendor_id: Optional[int] = None
    parent_payment_id: Optional[int] = None

    # 拆分金额（派生值，解析后不再重算）
    vendor_amount: Optional[Decimal] = None
    platform_fee: Optional[Decimal] = None
    commission_rate: Optional[Decimal] = None
    is_split_payment: bool = False
    split_details: Optional[dict] = None

    transaction_id: Optional[str] = None
    processed_at: Optional[datetime] = None
    gateway_response: Optional[dict] = None
    failure_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        """初始化后验证"""
        self.currency = (self.currency or "").upper()
        self.method = PaymentMethod(self.method)
        self.payment_type = PaymentType(self.payment_type)
        self.status = PaymentStatus(self.status)
        self._validate_amount()
        self._validate_currency()
        self._validate_graph()
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.processed_at = _ensure_utc(self.processed_at)

    def _validate_amount(self) -> None:
        if self.amount < 0 or (self.amount == 0 and not self.is_child_payment()):
            raise DomainValidationException(f"支付金额必须大于0: {self.amount}", field="amount")

    def _validate_currency(self) -> None:
        """业务规则：货币代码必须是3位字母"""
        if len(self.currency) != 3 or not self.currency.isalpha():
            raise DomainValidationException(f"无效的货币代码: {self.currency}", field="currency")

    def _validate_graph(self) -> None:
        if self.is_parent_payment():
            if self.vendor_id is not None or self.parent_payment_id is not None:
                raise PaymentInvariantError("parent payment cannot carry vendor_id or parent_payment_id")
        elif self.is_child_payment():
            if self.parent_payment_id is None and self.id is not None:
                raise PaymentInvariantError("child payment must reference its parent")
        elif self.parent_payment_id is not None:
            raise PaymentInvariantError("standalone payment cannot reference a parent")

    # ------------------------------------------------------------------
    # predicates
    # ------------------------------------------------------------------
    def is_parent_payment(self) -> bool:
        return self.payment_type == PaymentType.PARENT

    def is_child_payment(self) -> bool:
        return self.payment_type == PaymentType.CHILD

    def is_standalone_payment(self) -> bool:
        return self.payment_type == PaymentType.STANDALONE

    @property
    def is_captured(self) -> bool:
        return self.status in CAPTURED_STATUSES

    @property
    def is_settleable(self) -> bool:
        return not self.is_parent_payment() and self.status in SETTLEABLE_STATUSES

    @property
    def amounts_resolved(self) -> bool:
        return self.vendor_amount is not None and self.platform_fee is not None

    # ------------------------------------------------------------------
    # graph
    # ------------------------------------------------------------------
    @classmethod
    def new_parent(cls, order_id: int, amount: Decimal, currency: str, method: PaymentMethod, vendor_count: int) -> "Payment":
        now = datetime.now(timezone.utc)
        parent = cls(
            id=None,
            order_id=order_id,
            amount=quantize(amount, currency),
            currency=currency,
            method=method,
            payment_type=PaymentType.PARENT,
            status=PaymentStatus.SPLIT_PENDING,
            is_split_payment=True,
            created_at=now,
            updated_at=now,
        )
        parent.split_details = {
            "child_count": 0,
            "vendor_count": vendor_count,
            "total_amount": "0",
            "currency": parent.currency,
            "last_updated": now.isoformat(),
        }
        return parent

    def create_child(self, vendor_id: int, amount: Decimal, method: Optional[PaymentMethod] = None) -> "Payment":
        """
        基于父支付创建子支付（尚未持久化）

        在非父支付上调用属于编程错误，抛出 PaymentInvariantError
        """
        if not self.is_parent_payment():
            raise PaymentInvariantError("Cannot create child payment for non-parent payment")
        if self.id is None:
            raise PaymentInvariantError("Parent payment must be persisted before creating children")
        now = datetime.now(timezone.utc)
        return Payment(
            id=None,
            order_id=self.order_id,
            amount=quantize(amount, self.currency),
            currency=self.currency,
            method=method or self.method,
            payment_type=PaymentType.CHILD,
            status=PaymentStatus.PENDING,
            vendor_id=vendor_id,
            parent_payment_id=self.id,
            is_split_payment=True,
            created_at=now,
            updated_at=now,
        )

    def refresh_split_details(self, children: Iterable["Payment"]) -> dict:
        """根据已持久化的子支付重新计算 split_details（幂等）"""
        if not self.is_parent_payment():
            raise PaymentInvariantError("split details only exist on parent payments")
        children = list(children)
        now = datetime.now(timezone.utc)
        details = dict(self.split_details or {})
        details.update({
            "child_count": len(children),
            "total_amount": str(money_sum((c.amount for c in children), self.currency)),
            "currency": self.currency,
            "last_updated": now.isoformat(),
        })
        self.split_details = details
        self.updated_at = now
        return details

    # ------------------------------------------------------------------
    # amounts
    # ------------------------------------------------------------------
    def calculate_vendor_amount(self, commission_rate: Optional[Decimal] = None) -> Decimal:
        """供应商应得金额；已解析则直接返回存储值"""
        if self.vendor_amount is not None:
            return self.vendor_amount
        if not self.is_split_payment:
            return self.amount
        rate = commission_rate if commission_rate is not None else self.commission_rate
        if rate is None:
            raise DomainValidationException("拆分支付计算供应商金额需要佣金比例", field="commission_rate")
        return quantize(self.amount * (Decimal("1") - Decimal(rate)), self.currency)

    def calculate_platform_fee(self, commission_rate: Optional[Decimal] = None) -> Decimal:
        """平台费；已解析则直接返回存储值"""
        if self.platform_fee is not None:
            return self.platform_fee
        if not self.is_split_payment:
            return quantize(Decimal("0"), self.currency)
        return self.amount - self.calculate_vendor_amount(commission_rate)

    def resolve_amounts(self, vendor_amount: Decimal, platform_fee: Decimal, commission_rate: Optional[Decimal] = None) -> None:
        """一次性写入拆分金额；已解析时保持不变"""
        if self.is_parent_payment():
            raise PaymentInvariantError("parent payment never carries vendor_amount/platform_fee")
        if self.amounts_resolved:
            return
        if vendor_amount + platform_fee != self.amount:
            raise PaymentInvariantError(
                f"vendor_amount {vendor_amount} + platform_fee {platform_fee} != amount {self.amount}"
            )
        self.vendor_amount = vendor_amount
        self.platform_fee = platform_fee
        if commission_rate is not None:
            self.commission_rate = Decimal(commission_rate)

    # ------------------------------------------------------------------
    # state machine
    # ------------------------------------------------------------------
    def _touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)

    def mark_authorized(self, transaction_id: Optional[str] = None) -> None:
        if self.status not in (PaymentStatus.PENDING, PaymentStatus.SPLIT_PENDING):
            raise InvalidPaymentTransitionException(self.status.value, PaymentStatus.AUTHORIZED.value)
        self.status = PaymentStatus.AUTHORIZED
        if transaction_id:
            self.transaction_id = transaction_id
        self._touch()

    def mark_as_paid(self, transaction_id: Optional[str] = None, commission_rate: Optional[Decimal] = None) -> None:
        """
        标记为已支付

        已支付/待结算时不抛错也不重写金额，只补全缺失的交易号
        """
        if self.status in SETTLEABLE_STATUSES:
            if transaction_id and not self.transaction_id:
                self.transaction_id = transaction_id
                self._touch()
            return
        if self.status not in (PaymentStatus.PENDING, PaymentStatus.AUTHORIZED, PaymentStatus.SPLIT_PENDING):
            raise InvalidPaymentTransitionException(self.status.value, PaymentStatus.PAID.value)

        if not self.is_parent_payment():
            vendor_amount = self.calculate_vendor_amount(commission_rate)
            platform_fee = self.calculate_platform_fee(commission_rate)
            self.resolve_amounts(vendor_amount, platform_fee, commission_rate)

        self.status = PaymentStatus.PAID
        self.transaction_id = transaction_id or self.transaction_id
        self.processed_at = datetime.now(timezone.utc)
        self.updated_at = self.processed_at
        self.failure_reason = None

    def mark_failed(self, reason: Optional[str] = None, gateway_response: Optional[dict] = None) -> None:
        """标记失败；资金已移动的状态不能失败，已失败时幂等"""
        if self.status == PaymentStatus.FAILED:
            return
        if self.status in _NO_FAIL_STATUSES:
            raise InvalidPaymentTransitionException(self.status.value, PaymentStatus.FAILED.value)
        self.status = PaymentStatus.FAILED
        self.failure_reason = reason
        if gateway_response is not None:
            self.gateway_response = gateway_response
        self._touch()

    def mark_settlement_pending(self) -> None:
        if self.is_parent_payment():
            raise PaymentInvariantError("parent payments are never settled")
        if self.status == PaymentStatus.SETTLEMENT_PENDING:
            return
        if self.status != PaymentStatus.PAID:
            raise InvalidPaymentTransitionException(self.status.value, PaymentStatus.SETTLEMENT_PENDING.value)
        self.status = PaymentStatus.SETTLEMENT_PENDING
        self._touch()

    def refundable_balance(self, refunded_total: Decimal) -> Decimal:
        return self.amount - refunded_total

    def apply_refund(self, refunded_total: Decimal) -> None:
        """根据累计（未失败）退款金额更新状态"""
        if not self.is_captured:
            raise InvalidPaymentTransitionException(self.status.value, PaymentStatus.PARTIALLY_REFUNDED.value)
        if refunded_total > self.amount:
            raise PaymentInvariantError(f"refunded total {refunded_total} exceeds amount {self.amount}")
        if refunded_total == self.amount:
            self.status = PaymentStatus.REFUNDED
        elif refunded_total > 0:
            self.status = PaymentStatus.PARTIALLY_REFUNDED
        self._touch()

    def restore_after_refund_failure(self, refunded_total: Decimal) -> bool:
        """
        退款失败后根据剩余未失败退款重新推导状态

        已全额退款为终态，保持不变并返回 False 交由人工跟进
        """
        if self.status == PaymentStatus.REFUNDED:
            return False
        if self.status != PaymentStatus.PARTIALLY_REFUNDED:
            return True
        if refunded_total <= 0:
            self.status = PaymentStatus.PAID
            self._touch()
        return True


@dataclass
class PaymentRefund:
    """
    退款实体 - 针对单笔支付

    业务规则：金额必须大于0，累计未失败退款不能超过支付金额（由领域服务校验）
    """

    id: Optional[int]
    payment_id: int
    amount: Decimal
    currency: str
    status: RefundStatus = RefundStatus.PENDING
    reason: Optional[str] = None
    transaction_id: Optional[str] = None
    gateway_response: Optional[dict] = None
    failure_reason: Optional[str] = None
    processed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.amount <= 0:
            raise DomainValidationException(f"退款金额必须大于0: {self.amount}", field="amount")
        self.currency = (self.currency or "").upper()
        self.status = RefundStatus(self.status)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.processed_at = _ensure_utc(self.processed_at)

    @property
    def is_pending(self) -> bool:
        return self.status == RefundStatus.PENDING

    def mark_processed(self, transaction_id: Optional[str], gateway_response: Optional[dict[str, Any]] = None) -> None:
        if self.status != RefundStatus.PENDING:
            raise DomainValidationException(f"无法从状态 {self.status.value} 转换为 processed", field="status")
        self.status = RefundStatus.PROCESSED
        self.transaction_id = transaction_id
        self.gateway_response = gateway_response
        self.processed_at = datetime.now(timezone.utc)
        self.updated_at = self.processed_at
        self.failure_reason = None

    def mark_failed(self, reason: Optional[str] = None, gateway_response: Optional[dict[str, Any]] = None) -> None:
        if self.status != RefundStatus.PENDING:
            raise DomainValidationException(f"无法从状态 {self.status.value} 转换为 failed", field="status")
        self.status = RefundStatus.FAILED
        self.failure_reason = reason
        self.gateway_response = gateway_response
        self.updated_at = datetime.now(timezone.utc)
