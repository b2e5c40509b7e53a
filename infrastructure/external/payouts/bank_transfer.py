"""
Bank transfer payouts through an HTTP payout API.

POST {base_url}/v1/payouts with an ``Idempotency-Key`` header; the API answers
with ``{"id": ..., "status": "accepted" | "queued" | "completed" | "rejected" | ...}``.
A queued transfer has not moved money yet and is reported as pending.
"""
from __future__ import annotations

from typing import Optional

import httpx

from application.ports.payout import PayoutRequest, PayoutResult
from core.settings import payment_settings
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import PaymentProviderError, PaymentRecoverableError


class BankTransferPayoutClient(BasePaymentClient):
    provider = "bank_transfer"

    def __init__(self, base_url: Optional[str] = None, api_token: Optional[str] = None, *, transport=None):
        cfg = payment_settings.payout_api
        super().__init__(
            timeouts={"connect": 2.0, "read": cfg.timeout, "write": cfg.timeout, "total": cfg.timeout},
            retry={"max": payment_settings.retry.max, "base": payment_settings.retry.base_backoff},
            transport=transport,
        )
        self.base_url = (base_url or cfg.base_url).rstrip("/")
        self.api_token = api_token if api_token is not None else cfg.api_token

    async def _post(self, payload: dict, idempotency_key: Optional[str]) -> httpx.Response:
        headers = {"Content-Type": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        resp = await self._http().post(f"{self.base_url}/v1/payouts", json=payload, headers=headers)
        if resp.status_code >= 500 or resp.status_code == 429:
            # surfaced to the retry loop as a transport-level failure
            raise httpx.TransportError(f"payout api returned {resp.status_code}")
        return resp

    async def payout(self, req: PayoutRequest) -> PayoutResult:
        payload = {
            "reference": f"settlement-{req.settlement_id}",
            "vendor_id": req.vendor_id,
            "amount": str(req.amount),
            "currency": req.currency,
            "destination": req.destination,
        }
        try:
            resp = await self._retry(lambda: self._post(payload, req.idempotency_key))
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            raise PaymentRecoverableError(str(exc), provider=self.provider) from exc

        if resp.status_code >= 400:
            raise PaymentProviderError(
                f"payout api rejected request: {resp.status_code}",
                provider=self.provider,
                provider_code=str(resp.status_code),
                details={"body": resp.text[:500]},
            )
        data = resp.json()
        status = self._map_status(str(data.get("status", "")))
        self._log("bank_payout_submitted", settlement_id=req.settlement_id, status=status)
        return PayoutResult(transaction_id=data.get("id"), status=status, raw=data)
