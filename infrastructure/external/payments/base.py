"""
Base payment client implementing shared concerns: http, retry, logging, error mapping.

Concrete providers should subclass and implement provider-specific logic.
"""
from __future__ import annotations

from typing import Any, Callable, Optional
from contextlib import asynccontextmanager

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
from domain.refund.exceptions import GatewayUnavailable
from infrastructure.external.payments.exceptions import GatewayAPIError


logger = get_logger(__name__)

# Safe to retry: the request may or may not have reached the gateway.
READ_RETRYABLE = (httpx.TimeoutException, httpx.TransportError)
# Safe to retry for writes: the connection was never established.
WRITE_RETRYABLE = (httpx.ConnectError, httpx.ConnectTimeout)


class BasePaymentClient:
    provider: str = "base"

    def __init__(
        self,
        *,
        base_url: str = "",
        auth: Optional[tuple[str, str]] = None,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url
        self._auth = auth
        self._transport = transport
        self._timeouts_cfg = timeouts or {"connect": 1.0, "read": 3.0, "write": 3.0, "total": 5.0}
        self._retry_cfg = retry or {"max": 2, "base": 0.2}
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            timeout=self._timeouts_cfg["total"],
        )

    @asynccontextmanager
    async def client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                auth=self._auth,
                timeout=self.timeouts,
                transport=self._transport,
            )
        try:
            yield self._client
        finally:
            # Keep open for reuse; explicit aclose() will close.
            ...

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Any], *, retry_on: tuple[type[BaseException], ...] = READ_RETRYABLE):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type(retry_on),
            reraise=True,
        ):
            with attempt:
                return await fn()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        json: Optional[dict[str, Any]] = None,
        idempotent: bool = True,
    ) -> dict[str, Any]:
        """
        Send a request and return the decoded JSON body.

        Transport failures (after retries) and 5xx responses raise
        GatewayUnavailable; other non-2xx responses raise GatewayAPIError for
        the provider to interpret.
        """

        async def _send() -> httpx.Response:
            async with self.client() as c:
                return await c.request(method, path, json=json)

        try:
            resp = await self._retry(_send, retry_on=READ_RETRYABLE if idempotent else WRITE_RETRYABLE)
        except httpx.HTTPError as exc:
            logger.warning(
                "gateway_transport_error",
                provider=self.provider,
                operation=operation,
                error=repr(exc),
            )
            raise GatewayUnavailable(operation) from exc

        if resp.status_code >= 500:
            logger.warning(
                "gateway_server_error",
                provider=self.provider,
                operation=operation,
                status_code=resp.status_code,
            )
            raise GatewayUnavailable(operation)

        try:
            data = resp.json() if resp.content else {}
        except ValueError:
            data = {}

        if resp.status_code >= 400:
            error = data.get("error") if isinstance(data, dict) else None
            raise GatewayAPIError(resp.status_code, error, operation=operation)
        return data

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
