"""
Payment domain events.

Dataclass events record payment graph and refund lifecycle facts for downstream
handling. Domain remains free of infrastructure imports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class PaymentEvent:
    payment_id: Optional[int]
    order_id: int
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class PaymentCreated(PaymentEvent):
    payment_type: str = ""
    amount: str = ""


@dataclass
class PaymentSucceeded(PaymentEvent):
    transaction_id: Optional[str] = None
    child_count: int = 0


@dataclass
class PaymentFailed(PaymentEvent):
    reason: Optional[str] = None


@dataclass
class RefundRequested(PaymentEvent):
    refund_id: Optional[int] = None
    amount: str = ""


@dataclass
class RefundProcessed(PaymentEvent):
    refund_id: Optional[int] = None
    transaction_id: Optional[str] = None


@dataclass
class RefundFailed(PaymentEvent):
    refund_id: Optional[int] = None
    reason: Optional[str] = None
