"""
供应商结算实体 - 将已到账的支付转化为供应商打款记录
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException


class SettlementStatus(str, Enum):
    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class VendorSettlement:
    """
    结算记录

    业务规则：
    1. 每笔支付最多一条结算记录（payment_id 唯一）
    2. 只由结算服务创建，只由打款步骤修改
    """

    id: Optional[int]
    vendor_id: int
    payment_id: int
    amount: Decimal
    currency: str
    method: str
    status: SettlementStatus = SettlementStatus.PENDING
    transaction_id: Optional[str] = None
    processed_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.amount < 0:
            raise DomainValidationException(f"结算金额不能为负: {self.amount}", field="amount")
        self.status = SettlementStatus(self.status)
        self.currency = (self.currency or "").upper()
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.processed_at = _ensure_utc(self.processed_at)

    def mark_processed(self, transaction_id: Optional[str]) -> None:
        if self.status != SettlementStatus.PENDING:
            raise DomainValidationException(f"无法从状态 {self.status.value} 转换为 processed", field="status")
        self.status = SettlementStatus.PROCESSED
        self.transaction_id = transaction_id
        self.processed_at = datetime.now(timezone.utc)
        self.updated_at = self.processed_at

    def mark_failed(self, note: str) -> None:
        if self.status != SettlementStatus.PENDING:
            raise DomainValidationException(f"无法从状态 {self.status.value} 转换为 failed", field="status")
        self.status = SettlementStatus.FAILED
        self.notes = note
        self.updated_at = datetime.now(timezone.utc)

    def reset_for_retry(self, method: Optional[str] = None) -> None:
        """显式重试失败的结算"""
        if self.status != SettlementStatus.FAILED:
            raise DomainValidationException(f"只有失败的结算可以重试: {self.status.value}", field="status")
        self.status = SettlementStatus.PENDING
        if method:
            self.method = method
        self.updated_at = datetime.now(timezone.utc)
