"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class PaymentInvariantError(RuntimeError):
    """编程契约被破坏（例如在非父支付上创建子支付），不作为业务错误处理"""


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class OrderNotFoundException(BusinessException):
    def __init__(self, order_id: Optional[int] = None):
        details = {"order_id": order_id} if order_id is not None else None
        super().__init__(
            code=BusinessCode.ORDER_NOT_FOUND,
            message="Order not found",
            error_type="OrderNotFound",
            details=details,
        )


class OrderNotPayableException(BusinessException):
    def __init__(self, order_id: Optional[int], reason: str):
        super().__init__(
            code=BusinessCode.ORDER_NOT_PAYABLE,
            message=f"Order cannot be paid: {reason}",
            error_type="OrderNotPayable",
            details={"order_id": order_id, "reason": reason},
        )


class OrderStatusTransitionException(BusinessException):
    def __init__(self, current: str, target: str):
        super().__init__(
            code=BusinessCode.ORDER_STATUS_INVALID,
            message=f"Cannot move order from {current} to {target}",
            error_type="OrderStatusTransition",
            details={"current": current, "target": target},
            field="status",
        )


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------
class PaymentNotFoundException(BusinessException):
    def __init__(self, payment_id: Optional[int] = None):
        details = {"payment_id": payment_id} if payment_id is not None else None
        super().__init__(
            code=PaymentCode.PAYMENT_NOT_FOUND,
            message="Payment not found",
            error_type="PaymentNotFound",
            details=details,
        )


class PaymentAlreadyExistsException(BusinessException):
    def __init__(self, order_id: int):
        super().__init__(
            code=PaymentCode.PAYMENT_ALREADY_EXISTS,
            message=f"Order {order_id} already has an active payment",
            error_type="PaymentAlreadyExists",
            details={"order_id": order_id},
        )


class PaymentProcessingException(BusinessException):
    """支付网关提交失败（拒付/超时/异常），对外只暴露统一的失败信息"""

    def __init__(self, payment_id: Optional[int] = None, order_id: Optional[int] = None):
        details = {}
        if payment_id is not None:
            details["payment_id"] = payment_id
        if order_id is not None:
            details["order_id"] = order_id
        super().__init__(
            code=PaymentCode.PAYMENT_FAILED,
            message="Payment failed",
            error_type="PaymentFailed",
            details=details or None,
        )


class UnsupportedPaymentMethodException(BusinessException):
    def __init__(self, method: str):
        super().__init__(
            code=PaymentCode.UNSUPPORTED_METHOD,
            message=f"Payment method '{method}' is not supported yet",
            error_type="UnsupportedPaymentMethod",
            details={"method": method},
            field="method",
        )


class InvalidPaymentTransitionException(BusinessException):
    def __init__(self, current: str, target: str):
        super().__init__(
            code=PaymentCode.INVALID_TRANSITION,
            message=f"Cannot move payment from {current} to {target}",
            error_type="InvalidPaymentTransition",
            details={"current": current, "target": target},
            field="status",
        )


class SplitAmountMismatchException(BusinessException):
    def __init__(self, expected: Decimal, actual: Decimal):
        super().__init__(
            code=PaymentCode.SPLIT_AMOUNT_MISMATCH,
            message=f"Vendor amounts {actual} do not add up to order total {expected}",
            error_type="SplitAmountMismatch",
            details={"expected": str(expected), "actual": str(actual)},
        )


class PaymentNotRefundableException(BusinessException):
    def __init__(self, payment_id: Optional[int], status: str):
        super().__init__(
            code=PaymentCode.PAYMENT_NOT_REFUNDABLE,
            message=f"Payment in status {status} cannot be refunded",
            error_type="PaymentNotRefundable",
            details={"payment_id": payment_id, "status": status},
        )


class RefundExceedsBalanceException(BusinessException):
    def __init__(self, amount: Decimal, refundable: Decimal):
        super().__init__(
            code=PaymentCode.REFUND_EXCEEDS_BALANCE,
            message="Refund amount exceeds refundable balance",
            error_type="RefundExceedsBalance",
            details={"amount": str(amount), "refundable": str(refundable)},
            field="amount",
        )


class RefundNotFoundException(BusinessException):
    def __init__(self, refund_id: Optional[int] = None):
        details = {"refund_id": refund_id} if refund_id is not None else None
        super().__init__(
            code=PaymentCode.REFUND_NOT_FOUND,
            message="Refund not found",
            error_type="RefundNotFound",
            details=details,
        )


# ---------------------------------------------------------------------------
# Settlements
# ---------------------------------------------------------------------------
class SettlementAlreadyExistsException(BusinessException):
    """同一笔支付只能有一条结算记录（唯一约束冲突）"""

    def __init__(self, payment_id: int):
        super().__init__(
            code=PaymentCode.SETTLEMENT_ALREADY_EXISTS,
            message=f"Payment {payment_id} is already settled",
            error_type="SettlementAlreadyExists",
            details={"payment_id": payment_id},
        )
