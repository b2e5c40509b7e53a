"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from application.dtos.payments import ChargeRequest, GatewayRefundRequest, GatewayResult


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for third-party payment providers.

    Implementations should be async and side-effect free beyond IO.
    Declines are reported through ``GatewayResult.status``; transport or
    provider errors are raised.
    """

    provider: str

    async def charge(self, req: ChargeRequest) -> GatewayResult: ...

    async def refund(self, req: GatewayRefundRequest) -> GatewayResult: ...
