"""
Settlement DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from domain.settlement.entity import VendorSettlement


class SettlementDTO(BaseModel):
    id: int
    vendor_id: int
    payment_id: int
    amount: Decimal
    currency: str
    method: str
    status: str
    transaction_id: Optional[str] = None
    processed_at: Optional[datetime] = None
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_entity(cls, settlement: VendorSettlement) -> "SettlementDTO":
        return cls(
            id=settlement.id,
            vendor_id=settlement.vendor_id,
            payment_id=settlement.payment_id,
            amount=settlement.amount,
            currency=settlement.currency,
            method=settlement.method,
            status=settlement.status.value,
            transaction_id=settlement.transaction_id,
            processed_at=settlement.processed_at,
            notes=settlement.notes,
        )


class SettlementRunSummary(BaseModel):
    selected: int = 0
    processed: int = 0
    failed: int = 0
    skipped: int = 0
    errors: int = 0
    settlements: list[SettlementDTO] = Field(default_factory=list)


class RunSettlements(BaseModel):
    include_failed: bool = False
