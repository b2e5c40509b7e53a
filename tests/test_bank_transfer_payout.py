import json
from decimal import Decimal

import httpx
import pytest

from application.ports.payout import PayoutRequest
from infrastructure.external.payments.exceptions import PaymentProviderError, PaymentRecoverableError
from infrastructure.external.payouts import PayoutRouter
from infrastructure.external.payouts.bank_transfer import BankTransferPayoutClient

from conftest import StubPayout


def _request(**kwargs) -> PayoutRequest:
    defaults = dict(
        settlement_id=11, vendor_id=2, amount=Decimal("34.00"), currency="USD", method="bank_transfer",
        destination="DE89370400440532013000", idempotency_key="po-11",
    )
    defaults.update(kwargs)
    return PayoutRequest(**defaults)


def _client(handler) -> BankTransferPayoutClient:
    client = BankTransferPayoutClient(
        base_url="https://payouts.test", api_token="t0ken", transport=httpx.MockTransport(handler)
    )
    client._retry_cfg = {"max": 2, "base": 0.0}
    return client


@pytest.mark.asyncio
async def test_accepted_payout_succeeds():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"id": "bt_1", "status": "accepted"})

    client = _client(handler)
    result = await client.payout(_request())
    await client.aclose()

    assert result.succeeded
    assert result.transaction_id == "bt_1"
    assert seen[0].url == "https://payouts.test/v1/payouts"
    assert seen[0].headers["Idempotency-Key"] == "po-11"
    assert seen[0].headers["Authorization"] == "Bearer t0ken"
    body = json.loads(seen[0].content)
    assert body["amount"] == "34.00"
    assert body["reference"] == "settlement-11"


@pytest.mark.asyncio
async def test_rejected_status_is_not_success():
    client = _client(lambda r: httpx.Response(200, json={"id": "bt_2", "status": "rejected"}))
    result = await client.payout(_request())
    assert not result.succeeded
    assert result.status == "failed"


@pytest.mark.asyncio
async def test_server_errors_retried_then_recoverable():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503)

    with pytest.raises(PaymentRecoverableError):
        await _client(handler).payout(_request())
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_client_error_raises_provider_error():
    with pytest.raises(PaymentProviderError):
        await _client(lambda r: httpx.Response(422, json={"error": "bad iban"})).payout(_request())


@pytest.mark.asyncio
async def test_router_dispatches_by_method():
    bank = StubPayout()
    router = PayoutRouter({"bank_transfer": bank})
    await router.payout(_request())
    assert len(bank.requests) == 1
    with pytest.raises(PaymentProviderError):
        await router.payout(_request(method="carrier_pigeon"))


@pytest.mark.asyncio
async def test_queued_payout_is_pending_not_success():
    client = _client(lambda r: httpx.Response(202, json={"id": "bt_3", "status": "queued"}))
    result = await client.payout(_request())
    await client.aclose()

    assert not result.succeeded
    assert result.status == "pending"
    assert result.transaction_id == "bt_3"


def test_payout_client_exposes_only_payout_port():
    client = BankTransferPayoutClient(base_url="https://payouts.test", api_token="")
    assert callable(client.payout)
    assert not hasattr(client, "charge")
    assert not hasattr(client, "refund")


@pytest.mark.asyncio
async def test_http_client_reused_until_closed():
    client = _client(lambda r: httpx.Response(201, json={"id": "bt_4", "status": "completed"}))
    await client.payout(_request())
    first = client._client
    await client.payout(_request(settlement_id=12, idempotency_key="po-12"))
    assert client._client is first

    await client.aclose()
    assert client._client is None
