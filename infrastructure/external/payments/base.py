"""
Shared plumbing for provider adapters: http client, timeouts, retry, status mapping.

The base knows nothing about charges or payouts; concrete providers subclass it
and implement whichever port (PaymentGateway, PayoutProvider) they serve.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from core.logging_config import get_logger
from domain.common.money import Money
from shared.codes.payment_codes import PROVIDER_STATUS_TO_INTERNAL


logger = get_logger(__name__)


class BasePaymentClient:
    provider: str = "base"
    # exceptions worth another attempt; providers extend this
    retry_on: tuple[type[BaseException], ...] = (httpx.TimeoutException, httpx.TransportError)

    def __init__(
        self,
        *,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeouts_cfg = timeouts or {"connect": 1.0, "read": 3.0, "write": 3.0, "total": 5.0}
        self._retry_cfg = retry or {"max": 2, "base": 0.2}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            timeout=self._timeouts_cfg["total"],
        )

    def _http(self) -> httpx.AsyncClient:
        """Lazily created client, reused until aclose()."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeouts, transport=self._transport)
        return self._client

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Awaitable[Any]]):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type(self.retry_on),
            reraise=True,
        ):
            with attempt:
                return await fn()

    # Helpers
    @staticmethod
    def _to_minor(amount: Decimal, currency: str) -> int:
        return Money(amount, currency).to_minor()

    def _map_status(self, provider_status: str) -> str:
        mapping = PROVIDER_STATUS_TO_INTERNAL.get(self.provider, {})
        return mapping.get(provider_status, provider_status)

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
