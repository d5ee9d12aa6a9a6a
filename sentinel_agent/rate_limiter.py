"""Token bucket rate limiting for MEXC API calls."""

from __future__ import annotations

import asyncio
import inspect
import math
import threading
import time
from typing import Any, Awaitable, Callable, TypeVar

from sentinel_agent.config import RateLimitConfig
from sentinel_agent.errors import LimiterExhaustionError, RateLimitTimeoutError

T = TypeVar("T")

MIN_RETRY_DELAY_MS = 100

# MEXC weights per endpoint group; unknown endpoints cost `default`.
ENDPOINT_WEIGHTS: dict[str, int] = {
    "klines": 1,
    "depth": 1,
    "ticker": 1,
    "order": 1,
    "account": 10,
    "default": 1,
}


async def _call(fn: Callable[[], Awaitable[T] | T]) -> T:
    result = fn()
    if inspect.isawaitable(result):
        return await result
    return result


class TokenBucketLimiter:
    """Capped, continuously refilling credit balance."""

    def __init__(
        self,
        capacity: float = 5,
        refill_rate: float = 5,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        if refill_rate <= 0:
            raise ValueError("refill_rate must be > 0")
        self.capacity = float(capacity)
        self.refill_rate = float(refill_rate)
        self._clock = clock
        self._lock = threading.Lock()
        self.tokens = float(capacity)
        self.last_refill = clock()

    def _refill_locked(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self.last_refill)
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    def refill(self) -> None:
        with self._lock:
            self._refill_locked()

    def try_consume(self, cost: float = 1) -> bool:
        with self._lock:
            self._refill_locked()
            if self.tokens >= cost:
                self.tokens -= cost
                return True
            return False

    @property
    def available_tokens(self) -> int:
        with self._lock:
            self._refill_locked()
            return math.floor(self.tokens)

    def retry_delay(self, cost: float = 1) -> float:
        """Seconds to sleep before the next attempt, never below 100ms."""
        with self._lock:
            deficit = max(0.0, cost - self.tokens)
        wait_ms = math.ceil(deficit / self.refill_rate * 1000)
        return max(wait_ms, MIN_RETRY_DELAY_MS) / 1000

    async def wait_for_token(self, cost: float = 1, timeout: float | None = None) -> None:
        """Suspend until `cost` tokens are consumed.

        Without `timeout` the wait is unbounded. A cost above capacity can never
        succeed and fails immediately.
        """
        if cost > self.capacity:
            raise LimiterExhaustionError(f"Cost {cost} exceeds bucket capacity {self.capacity}")

        deadline = None if timeout is None else self._clock() + timeout
        while not self.try_consume(cost):
            delay = self.retry_delay(cost)
            if deadline is not None:
                remaining = deadline - self._clock()
                if remaining <= 0:
                    raise RateLimitTimeoutError(f"Timed out after {timeout}s waiting for {cost} token(s)")
                delay = min(delay, remaining)
            await asyncio.sleep(delay)

    async def execute(self, fn: Callable[[], Awaitable[T] | T], cost: float = 1, timeout: float | None = None) -> T:
        await self.wait_for_token(cost, timeout=timeout)
        return await _call(fn)

    def reset(self) -> None:
        with self._lock:
            self.tokens = self.capacity
            self.last_refill = self._clock()


class MexcRateLimiter:
    """Two independent quotas (per-IP and per-UID) that every call must satisfy."""

    def __init__(
        self,
        ip_capacity: float = 60,
        ip_refill_rate: float = 15,
        uid_capacity: float = 100,
        uid_refill_rate: float = 20,
        weights: dict[str, int] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ip_limiter = TokenBucketLimiter(ip_capacity, ip_refill_rate, clock=clock)
        self.uid_limiter = TokenBucketLimiter(uid_capacity, uid_refill_rate, clock=clock)
        self.weights = {**ENDPOINT_WEIGHTS, **(weights or {})}

    def weight(self, endpoint: str = "default") -> int:
        return self.weights.get(endpoint, self.weights.get("default", 1))

    async def wait(self, endpoint: str = "default", timeout: float | None = None) -> None:
        weight = self.weight(endpoint)
        tasks = [
            asyncio.ensure_future(self.ip_limiter.wait_for_token(weight, timeout=timeout)),
            asyncio.ensure_future(self.uid_limiter.wait_for_token(weight, timeout=timeout)),
        ]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

    async def execute(
        self,
        fn: Callable[[], Awaitable[T] | T],
        endpoint: str = "default",
        timeout: float | None = None,
    ) -> T:
        await self.wait(endpoint, timeout=timeout)
        return await _call(fn)

    def status(self) -> dict[str, Any]:
        return {
            "ipTokens": self.ip_limiter.available_tokens,
            "uidTokens": self.uid_limiter.available_tokens,
            "maxIpTokens": self.ip_limiter.capacity,
            "maxUidTokens": self.uid_limiter.capacity,
        }

    def reset(self) -> None:
        self.ip_limiter.reset()
        self.uid_limiter.reset()


class DelayRateLimiter:
    """Enforces a minimum gap between successive calls, without bursts."""

    def __init__(self, requests_per_second: float = 5, clock: Callable[[], float] = time.monotonic) -> None:
        if requests_per_second <= 0:
            raise ValueError("requests_per_second must be > 0")
        self.min_delay = 1.0 / requests_per_second
        self._clock = clock
        self._last_request: float | None = None
        self._lock = asyncio.Lock()

    async def wait(self, endpoint: str = "default", timeout: float | None = None) -> None:
        async with self._lock:
            if self._last_request is not None:
                remaining = self.min_delay - (self._clock() - self._last_request)
                if remaining > 0:
                    await asyncio.sleep(remaining)
            self._last_request = self._clock()

    async def execute(
        self,
        fn: Callable[[], Awaitable[T] | T],
        endpoint: str = "default",
        timeout: float | None = None,
    ) -> T:
        await self.wait(endpoint)
        return await _call(fn)

    def status(self) -> dict[str, Any]:
        return {"enabled": True, "minDelaySeconds": self.min_delay}


class NoopRateLimiter:
    async def execute(
        self,
        fn: Callable[[], Awaitable[T] | T],
        endpoint: str = "default",
        timeout: float | None = None,
    ) -> T:
        return await _call(fn)

    def status(self) -> dict[str, Any]:
        return {"enabled": False}


def build_rate_limiter(config: RateLimitConfig) -> MexcRateLimiter | DelayRateLimiter | NoopRateLimiter:
    if not config.enabled:
        return NoopRateLimiter()
    if config.mode == "delay":
        return DelayRateLimiter(config.max_requests_per_second)
    return MexcRateLimiter(
        ip_capacity=config.ip_weight.capacity,
        ip_refill_rate=config.ip_weight.refill_per_second,
        uid_capacity=config.uid_weight.capacity,
        uid_refill_rate=config.uid_weight.refill_per_second,
    )
