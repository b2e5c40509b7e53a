"""
Factory for payout providers.
"""
from __future__ import annotations

from application.ports.payout import PayoutProvider
from core.settings import payment_settings

from .bank_transfer import BankTransferPayoutClient
from .router import PayoutRouter


def get_payout_provider() -> PayoutProvider:
    providers: dict[str, PayoutProvider] = {"bank_transfer": BankTransferPayoutClient()}
    if payment_settings.stripe.secret_key:
        from .stripe_connect import StripeConnectPayoutClient
        providers["stripe"] = StripeConnectPayoutClient()
    return PayoutRouter(providers)


__all__ = ["get_payout_provider", "PayoutRouter", "BankTransferPayoutClient"]
