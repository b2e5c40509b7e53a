from decimal import Decimal

import pytest

stripe = pytest.importorskip("stripe")

from application.dtos.payments import ChargeRequest, GatewayRefundRequest
from application.ports.payout import PayoutRequest
from infrastructure.external.payments.exceptions import PaymentProviderError, PaymentRecoverableError
from infrastructure.external.payments.stripe_client import StripeClient
from infrastructure.external.payouts.stripe_connect import StripeConnectPayoutClient


def _charge_request(**kwargs) -> ChargeRequest:
    defaults = dict(
        payment_id=7, order_id=3, amount=Decimal("100.00"), currency="USD", method="stripe",
        idempotency_key="key-1", gateway_data={"source": "tok_visa"},
    )
    defaults.update(kwargs)
    return ChargeRequest(**defaults)


@pytest.mark.asyncio
async def test_charge_sends_minor_units_and_idempotency_key(monkeypatch):
    calls = []

    def fake_create(**params):
        calls.append(params)
        return {"id": "ch_123", "status": "succeeded"}

    monkeypatch.setattr(stripe.Charge, "create", fake_create)
    result = await StripeClient(secret_key="sk_test_123").charge(_charge_request())

    assert result.succeeded
    assert result.transaction_id == "ch_123"
    assert calls[0]["amount"] == 10000
    assert calls[0]["currency"] == "usd"
    assert calls[0]["source"] == "tok_visa"
    assert calls[0]["idempotency_key"] == "key-1"
    assert calls[0]["metadata"] == {"order_id": "3", "payment_id": "7"}


@pytest.mark.asyncio
async def test_zero_decimal_currency(monkeypatch):
    calls = []
    monkeypatch.setattr(stripe.Charge, "create", lambda **p: calls.append(p) or {"id": "ch_1", "status": "succeeded"})
    await StripeClient(secret_key="sk_test_123").charge(_charge_request(amount=Decimal("1500"), currency="JPY"))
    assert calls[0]["amount"] == 1500


@pytest.mark.asyncio
async def test_card_decline_is_a_failed_result(monkeypatch):
    def declined(**params):
        raise stripe.CardError("Your card was declined.", None, "card_declined")

    monkeypatch.setattr(stripe.Charge, "create", declined)
    result = await StripeClient(secret_key="sk_test_123").charge(_charge_request())
    assert not result.succeeded
    assert result.raw["code"] == "card_declined"


@pytest.mark.asyncio
async def test_connection_errors_retry_then_raise_recoverable(monkeypatch):
    attempts = []

    def broken(**params):
        attempts.append(params)
        raise stripe.APIConnectionError("network down")

    monkeypatch.setattr(stripe.Charge, "create", broken)
    client = StripeClient(secret_key="sk_test_123")
    client._retry_cfg = {"max": 1, "base": 0.0}
    with pytest.raises(PaymentRecoverableError):
        await client.charge(_charge_request())
    assert len(attempts) == 2


@pytest.mark.asyncio
async def test_refund_requires_charge_id(monkeypatch):
    client = StripeClient(secret_key="sk_test_123")
    req = GatewayRefundRequest(refund_id=1, transaction_id=None, amount=Decimal("5.00"), currency="USD")
    with pytest.raises(PaymentProviderError):
        await client.refund(req)

    monkeypatch.setattr(stripe.Refund, "create", lambda **p: {"id": "re_1", "status": "succeeded", "amount": p["amount"]})
    result = await client.refund(req.model_copy(update={"transaction_id": "ch_9"}))
    assert result.succeeded
    assert result.raw["amount"] == 500


@pytest.mark.asyncio
async def test_connect_transfer_to_vendor_account(monkeypatch):
    calls = []
    monkeypatch.setattr(stripe.Transfer, "create", lambda **p: calls.append(p) or {"id": "tr_1"})
    client = StripeConnectPayoutClient(secret_key="sk_test_123")
    result = await client.payout(PayoutRequest(
        settlement_id=4, vendor_id=2, amount=Decimal("54.00"), currency="USD", method="stripe",
        destination="acct_2", idempotency_key="po-key",
    ))
    assert result.succeeded
    assert calls[0]["destination"] == "acct_2"
    assert calls[0]["amount"] == 5400
    assert calls[0]["idempotency_key"] == "po-key"

    with pytest.raises(PaymentProviderError):
        await client.payout(PayoutRequest(vendor_id=2, amount=Decimal("1"), currency="USD", method="stripe"))
