"""
Payment DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.types import condecimal

from domain.payment.entity import Payment, PaymentMethod, PaymentRefund

# Common ISO-4217 currencies (extend as needed)
ISO_4217 = {
    "USD", "EUR", "GBP", "CNY", "JPY", "KRW", "HKD", "AUD", "CAD", "SGD",
}


def _validate_currency(v: str) -> str:
    u = (v or "").upper()
    if len(u) != 3 or not u.isalpha():
        raise ValueError("currency must be ISO-4217 alpha-3")
    if u not in ISO_4217:
        raise ValueError("unsupported currency")
    return u


# ---------------------------------------------------------------------------
# Gateway port payloads
# ---------------------------------------------------------------------------
class ChargeRequest(BaseModel):
    payment_id: int
    order_id: int
    amount: condecimal(gt=0)  # type: ignore[valid-type]
    currency: str = Field(default="USD")
    method: str
    idempotency_key: Optional[str] = None
    gateway_data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("currency")
    @classmethod
    def _upper_and_validate_currency(cls, v: str) -> str:
        return _validate_currency(v)


class GatewayRefundRequest(BaseModel):
    refund_id: int
    transaction_id: Optional[str] = None  # charge id from the original payment
    amount: condecimal(gt=0)  # type: ignore[valid-type]
    currency: str = Field(default="USD")
    reason: Optional[str] = None
    idempotency_key: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def _upper_and_validate_currency_refund(cls, v: str) -> str:
        return _validate_currency(v)


class GatewayResult(BaseModel):
    """Outcome of a gateway call; only status ``succeeded`` counts as success."""

    transaction_id: Optional[str] = None
    status: str
    raw: dict[str, Any] = Field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"


# ---------------------------------------------------------------------------
# Use-case inputs
# ---------------------------------------------------------------------------
class ProcessOrderPayment(BaseModel):
    method: PaymentMethod
    gateway_data: dict[str, Any] = Field(default_factory=dict)


class CreateRefund(BaseModel):
    amount: condecimal(gt=0)  # type: ignore[valid-type]
    reason: Optional[str] = Field(default=None, max_length=255)


# ---------------------------------------------------------------------------
# Use-case outputs
# ---------------------------------------------------------------------------
class RefundDTO(BaseModel):
    id: int
    payment_id: int
    amount: Decimal
    currency: str
    status: str
    reason: Optional[str] = None
    transaction_id: Optional[str] = None
    failure_reason: Optional[str] = None
    processed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_entity(cls, refund: PaymentRefund) -> "RefundDTO":
        return cls(
            id=refund.id,
            payment_id=refund.payment_id,
            amount=refund.amount,
            currency=refund.currency,
            status=refund.status.value,
            reason=refund.reason,
            transaction_id=refund.transaction_id,
            failure_reason=refund.failure_reason,
            processed_at=refund.processed_at,
            created_at=refund.created_at,
        )


class PaymentDTO(BaseModel):
    id: int
    order_id: int
    vendor_id: Optional[int] = None
    parent_payment_id: Optional[int] = None
    method: str
    payment_type: str
    status: str
    amount: Decimal
    vendor_amount: Optional[Decimal] = None
    platform_fee: Optional[Decimal] = None
    commission_rate: Optional[Decimal] = None
    currency: str
    is_split_payment: bool = False
    split_details: Optional[dict[str, Any]] = None
    transaction_id: Optional[str] = None
    processed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    children: list["PaymentDTO"] = Field(default_factory=list)
    refunds: list[RefundDTO] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_entity(
        cls,
        payment: Payment,
        children: Optional[list[Payment]] = None,
        refunds: Optional[list[PaymentRefund]] = None,
    ) -> "PaymentDTO":
        return cls(
            id=payment.id,
            order_id=payment.order_id,
            vendor_id=payment.vendor_id,
            parent_payment_id=payment.parent_payment_id,
            method=payment.method.value,
            payment_type=payment.payment_type.value,
            status=payment.status.value,
            amount=payment.amount,
            vendor_amount=payment.vendor_amount,
            platform_fee=payment.platform_fee,
            commission_rate=payment.commission_rate,
            currency=payment.currency,
            is_split_payment=payment.is_split_payment,
            split_details=payment.split_details,
            transaction_id=payment.transaction_id,
            processed_at=payment.processed_at,
            created_at=payment.created_at,
            children=[cls.from_entity(c) for c in (children or [])],
            refunds=[RefundDTO.from_entity(r) for r in (refunds or [])],
        )
