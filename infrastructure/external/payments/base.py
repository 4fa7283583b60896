"""
Base payment client implementing shared concerns: http, retry, logging.

Concrete providers subclass and implement provider-specific wire formats.
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Mapping, Optional

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger


logger = get_logger(__name__)

# The request never left this process: safe to retry or to report as a plain failure.
UNSENT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout)

DEFAULT_TIMEOUTS = {"connect": 3.0, "read": 10.0, "write": 10.0, "total": 10.0}


class BasePaymentClient:
    provider: str = "base"

    def __init__(
        self,
        *,
        base_url: str = "",
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeouts_cfg = {**DEFAULT_TIMEOUTS, **(timeouts or {})}
        self._retry_cfg = retry or {"max": 2, "base": 0.2}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def total_timeout(self) -> float:
        return float(self._timeouts_cfg["total"])

    @property
    def timeouts(self) -> httpx.Timeout:
        total = self.total_timeout
        return httpx.Timeout(
            connect=min(self._timeouts_cfg["connect"], total),
            read=min(self._timeouts_cfg["read"], total),
            write=min(self._timeouts_cfg["write"], total),
            pool=total,
        )

    def client(self) -> httpx.AsyncClient:
        """复用同一个 AsyncClient，由 aclose() 负责关闭"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self.timeouts,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _post_json(self, path: str, payload: Mapping[str, Any]) -> httpx.Response:
        """POST a JSON body, bounded by the total timeout.

        Exceeding the total budget raises ``asyncio.TimeoutError`` after the
        request may already have been sent.
        """
        return await asyncio.wait_for(
            self.client().post(path, json=dict(payload)),
            timeout=self.total_timeout,
        )

    async def _retry(self, fn: Callable[[], Awaitable[Any]]):
        """Retry connect-level failures only; use for idempotent reads."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type(UNSENT_ERRORS),
            reraise=True,
        ):
            with attempt:
                return await fn()

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
