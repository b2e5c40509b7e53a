"""
Payout port: moves settled money to a vendor's payout destination.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, Field


class PayoutRequest(BaseModel):
    settlement_id: Optional[int] = None
    vendor_id: int
    amount: Decimal
    currency: str
    method: str
    destination: Optional[str] = None  # provider account / bank reference
    idempotency_key: Optional[str] = None


class PayoutResult(BaseModel):
    transaction_id: Optional[str] = None
    status: str
    raw: dict[str, Any] = Field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"


@runtime_checkable
class PayoutProvider(Protocol):
    async def payout(self, req: PayoutRequest) -> PayoutResult: ...
