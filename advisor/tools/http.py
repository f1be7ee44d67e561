"""HTTP client for market-data providers, with retries, pacing and timeouts."""
from __future__ import annotations

import logging
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from advisor.config import settings
from advisor.exceptions import ToolFetchError
from advisor.services.rate_limiter import SlidingWindowRateLimiter

logger = logging.getLogger(__name__)


class RateLimitedError(ToolFetchError):
    """Upstream answered 429."""


class MarketDataClient:
    """
    Thin async wrapper around httpx used by every tool.

    Retries 429s and transport failures a bounded number of times with a
    fixed wait; any other non-2xx response fails immediately. Everything
    surfaces as ToolFetchError so tools have a single failure type.

    `transport` exists for tests (httpx.MockTransport); `limiters` maps a
    host to the SlidingWindowRateLimiter that paces requests to it.
    """

    def __init__(
        self,
        timeout: float | None = None,
        max_attempts: int | None = None,
        retry_wait_seconds: float | None = None,
        limiters: dict[str, SlidingWindowRateLimiter] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds
        self.max_attempts = max_attempts or settings.http_max_attempts
        self.retry_wait_seconds = (
            retry_wait_seconds
            if retry_wait_seconds is not None
            else settings.http_retry_wait_seconds
        )
        self._limiters = limiters or {}
        self._transport = transport

    async def get_json(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        return await self._request("GET", url, params=params, timeout=timeout)

    async def post_json(
        self,
        url: str,
        body: dict[str, Any],
        timeout: float | None = None,
    ) -> Any:
        return await self._request("POST", url, json=body, timeout=timeout)

    async def _request(self, method: str, url: str, timeout: float | None = None, **kwargs) -> Any:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type((RateLimitedError, httpx.TransportError)),
            wait=wait_fixed(self.retry_wait_seconds),
            stop=stop_after_attempt(self.max_attempts),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        logger.warning(
                            "Retrying %s %s (%d/%d)",
                            method, url, attempt.retry_state.attempt_number,
                            self.max_attempts,
                        )
                    return await self._send(method, url, timeout=timeout, **kwargs)
        except RateLimitedError as e:
            raise ToolFetchError(
                f"Rate limit exceeded after {self.max_attempts} attempts"
            ) from e
        except httpx.TimeoutException as e:
            raise ToolFetchError(f"Request to {url} timed out") from e
        except httpx.TransportError as e:
            raise ToolFetchError(f"Network error calling {url}: {e}") from e

    async def _send(self, method: str, url: str, timeout: float | None = None, **kwargs) -> Any:
        limiter = self._limiters.get(httpx.URL(url).host)
        if limiter is not None:
            await limiter.acquire()

        async with httpx.AsyncClient(
            timeout=timeout or self.timeout, transport=self._transport,
        ) as client:
            resp = await client.request(method, url, **kwargs)

        if resp.status_code == 429:
            raise RateLimitedError(f"{method} {url} -> 429")
        if resp.status_code >= 400:
            raise ToolFetchError(
                f"API error: {resp.status_code} - {resp.text[:200]}"
            )
        try:
            return resp.json()
        except ValueError as e:
            raise ToolFetchError(f"Malformed response from {url}") from e


_client: MarketDataClient | None = None


def get_market_data_client() -> MarketDataClient:
    """Shared client; Twelve Data requests are paced per the free-tier quota."""
    global _client
    if _client is None:
        twelvedata_host = httpx.URL(settings.twelvedata_base_url).host
        _client = MarketDataClient(
            limiters={
                twelvedata_host: SlidingWindowRateLimiter(
                    max_calls=settings.twelvedata_max_calls,
                    window_seconds=settings.twelvedata_window_seconds,
                ),
            },
        )
    return _client
