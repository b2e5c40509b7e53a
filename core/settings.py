"""
Payment, commission and settlement settings using pydantic-settings v2 with
nested env keys (``PAYMENT__SETTLEMENT__BATCH_SIZE=200``).

This module is isolated so core.config.Settings stays focused on the app shell.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PaymentTimeouts(BaseModel):
    connect: float = 1.0
    read: float = 3.0
    write: float = 3.0
    total: float = 5.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class StripeSettings(BaseModel):
    secret_key: Optional[str] = None
    api_version: Optional[str] = None


class SettlementSettings(BaseModel):
    default_payout_method: str = "bank_transfer"
    batch_size: int = Field(default=100, gt=0)
    payout_timeout: float = 10.0
    schedule_seconds: int = Field(default=3600, gt=0)


class PayoutApiSettings(BaseModel):
    """HTTP payout API used for bank transfers."""

    base_url: str = "http://localhost:9000"
    api_token: Optional[str] = None
    timeout: float = 10.0


class PaymentSettings(BaseSettings):
    default_provider: str = "stripe"
    default_commission_rate: Decimal = Decimal("0.15")
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)

    stripe: StripeSettings = Field(default_factory=StripeSettings)
    settlement: SettlementSettings = Field(default_factory=SettlementSettings)
    payout_api: PayoutApiSettings = Field(default_factory=PayoutApiSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PAYMENT__",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    @field_validator("default_commission_rate")
    @classmethod
    def _rate_in_range(cls, v: Decimal) -> Decimal:
        if v < 0 or v > 1:
            raise ValueError("default_commission_rate must be within [0, 1]")
        return v


payment_settings = PaymentSettings()
