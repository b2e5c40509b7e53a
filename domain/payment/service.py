"""
支付领域服务 - 支付图创建、状态级联与退款规则
"""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Optional

from domain.common.exceptions import (
    DomainValidationException,
    PaymentAlreadyExistsException,
    PaymentInvariantError,
    PaymentNotFoundException,
    PaymentNotRefundableException,
    RefundExceedsBalanceException,
    RefundNotFoundException,
)
from domain.common.money import money_sum, quantize
from domain.order.entity import Order
from domain.vendor.entity import Vendor

from .commission import CommissionPolicy
from .entity import Payment, PaymentMethod, PaymentRefund, PaymentStatus, PaymentType, RefundStatus
from .events import (
    PaymentCreated,
    PaymentFailed,
    PaymentSucceeded,
    RefundFailed,
    RefundProcessed,
    RefundRequested,
)
from .repository import PaymentRepository, RefundRepository


class PaymentDomainService:
    """
    支付领域服务 - 编排跨实体的业务规则

    职责：
    1. 创建独立支付或父/子支付图，并在创建时解析佣金拆分
    2. 校验拆分不变式（子支付之和等于父支付）
    3. 成功/失败在父子之间级联
    4. 退款业务规则（金额校验、可退款判断、状态推导）
    5. 产生领域事件
    """

    def __init__(
        self,
        payment_repository: PaymentRepository,
        refund_repository: RefundRepository,
        commission_policy: Optional[CommissionPolicy] = None,
    ):
        self.payment_repository = payment_repository
        self.refund_repository = refund_repository
        self.commission_policy = commission_policy or CommissionPolicy()
        self.events: List = []  # 领域事件收集

    # ------------------------------------------------------------------
    # creation
    # ------------------------------------------------------------------
    async def ensure_no_active_payment(self, order_id: int) -> None:
        """业务规则：一个订单只能有一笔未失败的支付"""
        if await self.payment_repository.exists_active_by_order(order_id):
            raise PaymentAlreadyExistsException(order_id)

    @staticmethod
    def method_for(vendor: Optional[Vendor], default: PaymentMethod) -> PaymentMethod:
        """子支付方式：供应商偏好优先，否则使用订单级方式"""
        preferred = vendor.preferred_payment_method if vendor is not None else None
        if not preferred:
            return default
        try:
            return PaymentMethod(preferred)
        except ValueError:
            raise DomainValidationException(
                f"供应商 {vendor.id} 的首选支付方式无效: {preferred}",
                field="preferred_payment_method",
            ) from None

    def _apply_split(self, payment: Payment, vendor: Optional[Vendor]) -> None:
        rate = self.commission_policy.rate_for(vendor)
        vendor_amount, platform_fee = self.commission_policy.split(payment.amount, rate, payment.currency)
        payment.resolve_amounts(vendor_amount, platform_fee, rate)

    async def create_standalone(self, order: Order, vendor_id: int, vendor: Optional[Vendor], method: PaymentMethod) -> Payment:
        now = datetime.now(timezone.utc)
        payment = Payment(
            id=None,
            order_id=order.id,
            amount=quantize(order.total, order.currency),
            currency=order.currency,
            method=method,
            payment_type=PaymentType.STANDALONE,
            status=PaymentStatus.PENDING,
            vendor_id=vendor_id,
            created_at=now,
            updated_at=now,
        )
        self._apply_split(payment, vendor)
        created = await self.payment_repository.create(payment)
        self.events.append(PaymentCreated(
            payment_id=created.id,
            order_id=created.order_id,
            payment_type=created.payment_type.value,
            amount=str(created.amount),
        ))
        return created

    async def create_split(
        self,
        order: Order,
        vendors: dict[int, Vendor],
        method: PaymentMethod,
    ) -> tuple[Payment, list[Payment]]:
        """
        创建父支付及每个供应商一笔子支付（按供应商ID升序）

        每创建一笔子支付后，根据已持久化的子支付重新推导父支付的 split_details
        """
        vendor_ids = order.vendor_ids()
        parent = Payment.new_parent(order.id, order.total, order.currency, method, len(vendor_ids))
        parent = await self.payment_repository.create(parent)
        self.events.append(PaymentCreated(
            payment_id=parent.id,
            order_id=parent.order_id,
            payment_type=parent.payment_type.value,
            amount=str(parent.amount),
        ))

        for vendor_id in vendor_ids:
            vendor = vendors.get(vendor_id)
            child = parent.create_child(
                vendor_id=vendor_id,
                amount=order.vendor_total(vendor_id),
                method=self.method_for(vendor, method),
            )
            self._apply_split(child, vendor)
            await self.payment_repository.create(child)
            persisted = await self.payment_repository.list_children(parent.id)
            parent.refresh_split_details(persisted)
            parent = await self.payment_repository.update(parent)

        children = await self.payment_repository.list_children(parent.id)
        return parent, children

    @staticmethod
    def verify_split(parent: Payment, children: Iterable[Payment]) -> None:
        """拆分不变式；违反即为编程错误"""
        children = list(children)
        if not children:
            raise PaymentInvariantError(f"parent payment {parent.id} has no children")
        for child in children:
            if child.parent_payment_id != parent.id or not child.is_child_payment():
                raise PaymentInvariantError(f"payment {child.id} is not a child of {parent.id}")
            if not child.amounts_resolved:
                raise PaymentInvariantError(f"child payment {child.id} has unresolved amounts")
        total = money_sum((c.amount for c in children), parent.currency)
        if total != parent.amount:
            raise PaymentInvariantError(f"children total {total} != parent amount {parent.amount}")
        reconciled = money_sum((c.vendor_amount for c in children), parent.currency) + money_sum(
            (c.platform_fee for c in children), parent.currency
        )
        if reconciled != parent.amount:
            raise PaymentInvariantError(f"vendor amounts + platform fees {reconciled} != parent amount {parent.amount}")

    # ------------------------------------------------------------------
    # outcome cascade
    # ------------------------------------------------------------------
    async def confirm_paid(
        self,
        payment: Payment,
        children: Iterable[Payment] = (),
        *,
        transaction_id: Optional[str] = None,
        gateway_response: Optional[dict] = None,
    ) -> tuple[Payment, list[Payment]]:
        """网关确认成功：支付标记为已支付，父支付级联到所有子支付（子支付沿用父支付的交易号）"""
        payment.gateway_response = gateway_response
        payment.mark_as_paid(transaction_id)
        payment = await self.payment_repository.update(payment)

        updated_children = []
        for child in children:
            child.mark_as_paid(payment.transaction_id)
            updated_children.append(await self.payment_repository.update(child))

        self.events.append(PaymentSucceeded(
            payment_id=payment.id,
            order_id=payment.order_id,
            transaction_id=payment.transaction_id,
            child_count=len(updated_children),
        ))
        return payment, updated_children

    async def mark_failed(
        self,
        payment: Payment,
        children: Iterable[Payment] = (),
        *,
        reason: str,
        gateway_response: Optional[dict] = None,
    ) -> tuple[Payment, list[Payment]]:
        """网关失败：支付及其所有子支付标记为失败，错误载荷记录在支付上"""
        payment.mark_failed(reason, gateway_response)
        payment = await self.payment_repository.update(payment)

        updated_children = []
        for child in children:
            child.mark_failed(reason)
            updated_children.append(await self.payment_repository.update(child))

        self.events.append(PaymentFailed(payment_id=payment.id, order_id=payment.order_id, reason=reason))
        return payment, updated_children

    # ------------------------------------------------------------------
    # refunds
    # ------------------------------------------------------------------
    async def create_refund(
        self,
        payment_id: int,
        amount: Decimal,
        reason: Optional[str] = None,
    ) -> tuple[Payment, PaymentRefund]:
        """
        创建退款

        业务规则（校验失败时不写入任何数据）：
        1. 金额必须大于0
        2. 金额不能超过 支付金额 - 未失败退款总额
        3. 支付必须已到账且不是父支付

        返回：(更新后的Payment, 新创建的PaymentRefund)
        """
        if amount is None or amount <= 0:
            raise DomainValidationException(f"退款金额必须大于0: {amount}", field="amount")

        # 行锁保证并发退款看到一致的已退款总额
        payment = await self.payment_repository.get_for_update(payment_id)
        if not payment:
            raise PaymentNotFoundException(payment_id)
        amount = quantize(amount, payment.currency)

        refunded = quantize(await self.refund_repository.get_total_refunded_amount(payment_id), payment.currency)
        refundable = payment.refundable_balance(refunded)
        if amount > refundable:
            raise RefundExceedsBalanceException(amount, refundable)

        if not payment.is_captured or payment.is_parent_payment():
            raise PaymentNotRefundableException(payment.id, payment.status.value)

        now = datetime.now(timezone.utc)
        refund = await self.refund_repository.create(PaymentRefund(
            id=None,
            payment_id=payment.id,
            amount=amount,
            currency=payment.currency,
            status=RefundStatus.PENDING,
            reason=reason,
            created_at=now,
            updated_at=now,
        ))

        payment.apply_refund(refunded + amount)
        payment = await self.payment_repository.update(payment)

        self.events.append(RefundRequested(
            payment_id=payment.id,
            order_id=payment.order_id,
            refund_id=refund.id,
            amount=str(refund.amount),
        ))
        return payment, refund

    async def get_refund(self, refund_id: int) -> PaymentRefund:
        refund = await self.refund_repository.get_by_id(refund_id)
        if not refund:
            raise RefundNotFoundException(refund_id)
        return refund

    async def complete_refund(
        self,
        refund: PaymentRefund,
        *,
        transaction_id: Optional[str],
        gateway_response: Optional[dict] = None,
    ) -> PaymentRefund:
        refund.mark_processed(transaction_id, gateway_response)
        updated = await self.refund_repository.update(refund)
        payment = await self.payment_repository.get_by_id(refund.payment_id)
        self.events.append(RefundProcessed(
            payment_id=refund.payment_id,
            order_id=payment.order_id if payment else 0,
            refund_id=refund.id,
            transaction_id=transaction_id,
        ))
        return updated

    async def fail_refund(
        self,
        refund: PaymentRefund,
        *,
        reason: str,
        gateway_response: Optional[dict] = None,
    ) -> tuple[PaymentRefund, Payment, bool]:
        """
        标记退款失败，并根据剩余未失败退款重新推导支付状态

        返回 (退款, 支付, 是否已恢复)；已全额退款的支付保持终态，返回 False
        """
        payment = await self.payment_repository.get_by_id(refund.payment_id)
        if not payment:
            raise PaymentNotFoundException(refund.payment_id)

        refund.mark_failed(reason, gateway_response)
        updated_refund = await self.refund_repository.update(refund)

        remaining = quantize(await self.refund_repository.get_total_refunded_amount(payment.id), payment.currency)
        restored = payment.restore_after_refund_failure(remaining)
        payment = await self.payment_repository.update(payment)

        self.events.append(RefundFailed(
            payment_id=payment.id,
            order_id=payment.order_id,
            refund_id=refund.id,
            reason=reason,
        ))
        return updated_refund, payment, restored

    def clear_events(self) -> List:
        """清空并返回领域事件"""
        events = self.events.copy()
        self.events.clear()
        return events
