"""Dispatch payouts to the provider registered for the settlement's method."""
from __future__ import annotations

from typing import Mapping

from application.ports.payout import PayoutProvider, PayoutRequest, PayoutResult
from infrastructure.external.payments.exceptions import PaymentProviderError


class PayoutRouter:
    def __init__(self, providers: Mapping[str, PayoutProvider]):
        self._providers = dict(providers)

    async def payout(self, req: PayoutRequest) -> PayoutResult:
        provider = self._providers.get(req.method)
        if provider is None:
            raise PaymentProviderError(f"no payout provider for method {req.method}", provider="router")
        return await provider.payout(req)

    async def aclose(self) -> None:
        for provider in self._providers.values():
            close = getattr(provider, "aclose", None)
            if callable(close):
                await close()
