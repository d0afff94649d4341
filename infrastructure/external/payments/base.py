"""
Base payment client: pooled httpx client, tenacity retries and logging.

Provider adapters subclass this and implement order creation and the two
signature checks of the PaymentGateway port.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from application.dtos.payments import ProcessorOrder
from core.logging_config import get_logger


logger = get_logger(__name__)

R = TypeVar("R")

DEFAULT_TIMEOUTS = {"connect": 1.0, "read": 3.0, "write": 3.0, "total": 5.0}
DEFAULT_RETRY = {"max": 2, "base": 0.2}
RETRYABLE_ERRORS = (httpx.TimeoutException, httpx.TransportError)


class BasePaymentClient:
    provider: str = "base"

    def __init__(
        self,
        *,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        auth: Optional[httpx.Auth] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeouts_cfg = {**DEFAULT_TIMEOUTS, **(timeouts or {})}
        self._retry_cfg = {**DEFAULT_RETRY, **(retry or {})}
        self._auth = auth
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        cfg = self._timeouts_cfg
        return httpx.Timeout(cfg["total"], connect=cfg["connect"], read=cfg["read"], write=cfg["write"])

    @asynccontextmanager
    async def client(self):
        # Lazily created and kept for reuse until aclose()
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeouts, auth=self._auth, transport=self._transport)
        yield self._client

    async def aclose(self) -> None:
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Awaitable[R]]) -> R:
        """Retry transport failures only; HTTP error statuses are the caller's call."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    self._log("processor_call_retry", attempt=attempt.retry_state.attempt_number)
                return await fn()
        raise AssertionError("unreachable")  # pragma: no cover

    async def create_order(self, *, amount: int, receipt: str, notes: Optional[dict[str, str]] = None) -> ProcessorOrder:
        raise NotImplementedError

    def verify_client_signature(self, processor_order_id: str, payment_id: str, signature: str) -> bool:
        raise NotImplementedError

    def verify_webhook(self, headers: dict[str, Any], body: bytes) -> None:
        raise NotImplementedError

    def _log(self, event: str, **kwargs) -> None:
        logger.info(event, provider=self.provider, **kwargs)
