"""
Money helpers shared by order, payment and settlement entities.

Amounts are always Decimal and quantized to the currency minor unit.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Union

# Zero-decimal currencies (extend as needed)
ZERO_DECIMAL_CURRENCIES = {"JPY", "KRW"}

Number = Union[Decimal, int, str]


def currency_exponent(currency: str) -> int:
    return 0 if (currency or "").upper() in ZERO_DECIMAL_CURRENCIES else 2


def quantize(amount: Number, currency: str = "USD") -> Decimal:
    """Round to the currency minor unit (half up)."""
    exp = currency_exponent(currency)
    step = Decimal(1).scaleb(-exp)
    return Decimal(str(amount)).quantize(step, rounding=ROUND_HALF_UP)


def money_sum(values: Iterable[Decimal | None], currency: str = "USD") -> Decimal:
    total = Decimal("0")
    for v in values:
        if v is not None:
            total += v
    return quantize(total, currency)


@dataclass(frozen=True)
class Money:
    amount: Decimal
    currency: str

    def to_minor(self) -> int:
        exponent = currency_exponent(self.currency)
        return int((self.amount * (Decimal(10) ** exponent)).to_integral_value(rounding=ROUND_HALF_UP))
