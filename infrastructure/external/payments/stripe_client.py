"""
Stripe charge/refund adapter using the official stripe-python SDK.

The SDK is synchronous; calls run in a worker thread so the event loop is not
blocked. Idempotency keys are passed through the ``idempotency_key`` kwarg so a
retried request never charges twice.
"""
from __future__ import annotations

import asyncio
from typing import Any, Optional

import stripe

from application.dtos.payments import ChargeRequest, GatewayRefundRequest, GatewayResult
from core.logging_config import get_logger
from core.settings import payment_settings
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import (
    PaymentConfigurationError,
    PaymentProviderError,
    PaymentRecoverableError,
)


logger = get_logger(__name__)


def _as_dict(obj: Any) -> dict[str, Any]:
    if obj is None:
        return {}
    to_dict = getattr(obj, "to_dict_recursive", None) or getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return dict(obj)


class StripeClient(BasePaymentClient):
    provider = "stripe"
    retry_on = (stripe.APIConnectionError, stripe.RateLimitError)

    def __init__(self, secret_key: Optional[str] = None):
        super().__init__(
            timeouts=payment_settings.timeouts.model_dump(),
            retry={"max": payment_settings.retry.max, "base": payment_settings.retry.base_backoff},
        )
        key = secret_key or payment_settings.stripe.secret_key
        if not key:
            raise PaymentConfigurationError("PAYMENT__STRIPE__SECRET_KEY not configured", provider=self.provider)
        stripe.api_key = key
        if payment_settings.stripe.api_version:
            stripe.api_version = payment_settings.stripe.api_version

    def _raise_for(self, exc: Exception) -> None:
        code = getattr(exc, "code", None)
        if isinstance(exc, self.retry_on):
            raise PaymentRecoverableError(str(exc), provider=self.provider, provider_code=code) from exc
        raise PaymentProviderError(str(exc), provider=self.provider, provider_code=code) from exc

    async def charge(self, req: ChargeRequest) -> GatewayResult:
        source = req.gateway_data.get("source") or req.gateway_data.get("token")
        params: dict[str, Any] = {
            "amount": self._to_minor(req.amount, req.currency),
            "currency": req.currency.lower(),
            "description": f"Order {req.order_id}",
            "metadata": {"order_id": str(req.order_id), "payment_id": str(req.payment_id)},
            "idempotency_key": req.idempotency_key,
        }
        if source:
            params["source"] = source
        if req.gateway_data.get("customer"):
            params["customer"] = req.gateway_data["customer"]

        try:
            charge = await self._retry(lambda: asyncio.to_thread(stripe.Charge.create, **params))
        except stripe.CardError as exc:
            # declines are an outcome, not a transport failure
            self._log("stripe_charge_declined", order_id=req.order_id, decline_code=getattr(exc, "code", None))
            return GatewayResult(
                transaction_id=None,
                status="failed",
                raw={"error": "card_error", "code": getattr(exc, "code", None), "message": str(exc)},
            )
        except stripe.StripeError as exc:
            self._raise_for(exc)

        status = self._map_status(str(charge["status"]))
        self._log("stripe_charge_completed", order_id=req.order_id, charge_id=charge["id"], status=status)
        return GatewayResult(transaction_id=str(charge["id"]), status=status, raw=_as_dict(charge))

    async def refund(self, req: GatewayRefundRequest) -> GatewayResult:
        if not req.transaction_id:
            raise PaymentProviderError("Charge id required for refund", provider=self.provider)
        params: dict[str, Any] = {
            "charge": req.transaction_id,
            "amount": self._to_minor(req.amount, req.currency),
            "metadata": {"refund_id": str(req.refund_id), "reason": req.reason or ""},
            "idempotency_key": req.idempotency_key,
        }
        try:
            refund = await self._retry(lambda: asyncio.to_thread(stripe.Refund.create, **params))
        except stripe.StripeError as exc:
            self._raise_for(exc)

        status = self._map_status(str(refund.get("status", "")))
        self._log("stripe_refund_completed", refund_id=req.refund_id, stripe_refund_id=refund["id"], status=status)
        return GatewayResult(transaction_id=str(refund["id"]), status=status, raw=_as_dict(refund))
