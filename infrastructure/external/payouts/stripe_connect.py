"""
Stripe Connect payouts: a Transfer from the platform balance to the vendor's
connected account (``Vendor.payout_account`` holds the ``acct_...`` id).
"""
from __future__ import annotations

import asyncio
from typing import Any

import stripe

from application.ports.payout import PayoutRequest, PayoutResult
from infrastructure.external.payments.exceptions import PaymentProviderError
from infrastructure.external.payments.stripe_client import StripeClient, _as_dict


class StripeConnectPayoutClient(StripeClient):

    async def payout(self, req: PayoutRequest) -> PayoutResult:
        if not req.destination:
            raise PaymentProviderError("vendor has no connected account", provider=self.provider)
        params: dict[str, Any] = {
            "amount": self._to_minor(req.amount, req.currency),
            "currency": req.currency.lower(),
            "destination": req.destination,
            "transfer_group": f"settlement-{req.settlement_id}",
            "metadata": {"settlement_id": str(req.settlement_id), "vendor_id": str(req.vendor_id)},
            "idempotency_key": req.idempotency_key,
        }
        try:
            transfer = await self._retry(lambda: asyncio.to_thread(stripe.Transfer.create, **params))
        except stripe.StripeError as exc:
            self._raise_for(exc)

        # a created transfer has moved the funds; reversals arrive as webhooks
        self._log("stripe_transfer_created", settlement_id=req.settlement_id, transfer_id=transfer["id"])
        return PayoutResult(transaction_id=str(transfer["id"]), status="succeeded", raw=_as_dict(transfer))
