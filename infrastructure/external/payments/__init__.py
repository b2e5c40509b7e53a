"""
Payment gateway selection.

``PAYMENT__DEFAULT_PROVIDER`` names the gateway that charges card methods
(``stripe`` and ``credit_card``); other methods never reach a gateway.
"""
from __future__ import annotations

from typing import Optional

from application.ports.payment_gateway import PaymentGateway
from core.settings import payment_settings

from .exceptions import PaymentConfigurationError


def get_payment_gateway(provider: Optional[str] = None) -> PaymentGateway:
    name = (provider or payment_settings.default_provider).lower()
    if name == "stripe":
        from .stripe_client import StripeClient
        return StripeClient()
    raise PaymentConfigurationError(f"Unsupported payment provider: {name}", provider=name)


__all__ = ["get_payment_gateway", "PaymentConfigurationError"]
