"""
佣金策略 - 平台佣金比例与供应商金额拆分

默认比例由配置注入（payment_settings.default_commission_rate），
供应商可以有自己的比例。
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Protocol

from domain.common.exceptions import DomainValidationException
from domain.common.money import quantize


class HasCommissionRate(Protocol):
    commission_rate: Optional[Decimal]


def _validate_rate(rate: Decimal, field: str = "commission_rate") -> Decimal:
    rate = Decimal(str(rate))
    if rate < 0 or rate > 1:
        raise DomainValidationException(f"佣金比例必须在 [0, 1] 之间: {rate}", field=field)
    return rate


@dataclass(frozen=True)
class CommissionPolicy:
    default_rate: Decimal = Decimal("0.15")

    def __post_init__(self):
        object.__setattr__(self, "default_rate", _validate_rate(self.default_rate, "default_rate"))

    def rate_for(self, vendor: Optional[HasCommissionRate]) -> Decimal:
        """供应商比例优先，未设置时使用默认比例"""
        if vendor is not None and vendor.commission_rate is not None:
            return _validate_rate(vendor.commission_rate)
        return self.default_rate

    def split(self, amount: Decimal, rate: Decimal, currency: str = "USD") -> tuple[Decimal, Decimal]:
        """
        返回 (vendor_amount, platform_fee)

        平台费取差值，保证两者之和与 amount 在货币精度上完全相等
        """
        rate = _validate_rate(rate)
        amount = quantize(amount, currency)
        vendor_amount = quantize(amount * (Decimal("1") - rate), currency)
        platform_fee = amount - vendor_amount
        return vendor_amount, platform_fee
