from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Optional

import httpx

from swapbot.core.exceptions import (
    CircuitBreakerOpen,
    QuoteExpired,
    UpstreamBadResponse,
    UpstreamRateLimited,
)
from swapbot.core.request_spec import RequestSpec

logger = logging.getLogger(__name__)

# Status the venue uses for a swap built from a stale quote.
QUOTE_EXPIRED_STATUS = 409


class TokenBucket:
    def __init__(self, rate_per_sec: float, capacity: Optional[float] = None) -> None:
        self.rate_per_sec = max(rate_per_sec, 0.1)
        self.capacity = capacity or self.rate_per_sec
        self.tokens = self.capacity
        self.last_refill = time.monotonic()
        self._lock = asyncio.Lock()

    async def acquire(self, amount: float = 1.0) -> None:
        while True:
            async with self._lock:
                now = time.monotonic()
                self.tokens = min(self.capacity, self.tokens + (now - self.last_refill) * self.rate_per_sec)
                self.last_refill = now
                if self.tokens >= amount:
                    self.tokens -= amount
                    return
                wait_time = (amount - self.tokens) / self.rate_per_sec
            await asyncio.sleep(wait_time)


class CircuitBreaker:
    def __init__(self, failure_threshold: int = 5, cooldown_sec: float = 30.0) -> None:
        self.failure_threshold = max(1, failure_threshold)
        self.cooldown_sec = max(1.0, cooldown_sec)
        self.failures = 0
        self.open_until = 0.0

    def allow(self) -> bool:
        return not (self.open_until and time.monotonic() < self.open_until)

    def record_success(self) -> None:
        self.failures = 0
        self.open_until = 0.0

    def record_failure(self) -> None:
        self.failures += 1
        if self.failures >= self.failure_threshold:
            self.open_until = time.monotonic() + self.cooldown_sec
            self.failures = 0


class ResilientHttpClient:
    """httpx wrapper with rate limiting, retry with backoff and a circuit breaker.

    429 and 5xx responses and transport errors are retried; other 4xx are
    terminal. A 409 is mapped to QuoteExpired so callers can refresh a quote.
    """

    def __init__(
        self,
        name: str = "upstream",
        timeout: float = 10.0,
        rps: float = 5.0,
        max_retries: int = 3,
        backoff_base: float = 0.5,
        backoff_max: float = 8.0,
        async_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.name = name
        self.timeout = timeout
        self.max_retries = max(0, max_retries)
        self.backoff_base = max(0.1, backoff_base)
        self.backoff_max = max(backoff_max, self.backoff_base)
        self._client = async_client
        self._owns_client = async_client is None
        self._rate_limiter = TokenBucket(rate_per_sec=rps)
        self._circuit_breaker = CircuitBreaker()

    async def __aenter__(self) -> "ResilientHttpClient":
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def request(self, spec: RequestSpec) -> Any:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        if not self._circuit_breaker.allow():
            raise CircuitBreakerOpen(f"{self.name} circuit breaker is open")

        last_error: Optional[BaseException] = None
        for attempt in range(self.max_retries + 1):
            await self._rate_limiter.acquire()
            try:
                resp = await self._client.request(
                    spec.method,
                    spec.url,
                    params=spec.params(),
                    headers=spec.headers,
                    json=spec.json,
                )
            except httpx.HTTPError as exc:
                self._circuit_breaker.record_failure()
                last_error = exc
                logger.warning(f"{self.name} transport error on {spec.method} {spec.path}: {exc!r}")
                if attempt >= self.max_retries:
                    break
                await self._sleep_backoff(attempt)
                continue

            if resp.status_code == 429:
                self._circuit_breaker.record_failure()
                last_error = UpstreamRateLimited(f"{self.name} rate limited", status_code=resp.status_code)
            elif resp.status_code >= 500:
                self._circuit_breaker.record_failure()
                last_error = UpstreamBadResponse(f"{self.name} upstream error", status_code=resp.status_code)
            elif resp.status_code == QUOTE_EXPIRED_STATUS:
                raise QuoteExpired(f"{self.name} rejected stale quote", status_code=resp.status_code)
            elif resp.status_code >= 400:
                raise UpstreamBadResponse(
                    f"{self.name} request rejected: {resp.text[:200]}", status_code=resp.status_code
                )
            else:
                try:
                    payload = resp.json()
                except ValueError as exc:
                    raise UpstreamBadResponse(f"{self.name} returned invalid JSON") from exc
                self._circuit_breaker.record_success()
                return payload

            if attempt >= self.max_retries:
                break
            await self._sleep_backoff(attempt, resp.headers.get("Retry-After"))

        if last_error:
            raise last_error
        raise RuntimeError(f"{self.name} request failed without a response")

    async def _sleep_backoff(self, attempt: int, retry_after: Optional[str] = None) -> None:
        if retry_after:
            try:
                await asyncio.sleep(float(retry_after))
                return
            except ValueError:
                pass
        await asyncio.sleep(min(self.backoff_max, self.backoff_base * (2**attempt)))


__all__ = ["CircuitBreaker", "QUOTE_EXPIRED_STATUS", "ResilientHttpClient", "TokenBucket"]
