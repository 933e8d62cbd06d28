from __future__ import annotations

import threading
import time
from typing import Callable

from adsapi.config import RateLimitPolicy
from adsapi.http.context import CallContext
from adsapi.http.errors import RequestCancelledError

# Refill arithmetic can leave 0.9999999999999998 tokens where 1.0 is meant.
_TOKEN_EPSILON = 1e-9
_MIN_WAIT_S = 1e-6


def _raise_if_done(context: CallContext | None) -> None:
    if context is not None and context.done:
        raise RequestCancelledError(f"rate limit wait aborted: {context.reason}")


class TokenBucket:
    def __init__(
        self,
        rate_per_sec: float,
        capacity: float | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if rate_per_sec <= 0:
            raise ValueError("rate_per_sec must be positive")
        if capacity is not None and capacity <= 0:
            raise ValueError("capacity must be positive")
        self._rate = rate_per_sec
        self._capacity = capacity if capacity is not None else rate_per_sec
        self._tokens = self._capacity
        self._clock = clock
        self._sleep = sleep
        self._updated_at = clock()
        self._lock = threading.Lock()

    @property
    def rate(self) -> float:
        return self._rate

    @property
    def capacity(self) -> float:
        return self._capacity

    @property
    def available(self) -> float:
        with self._lock:
            self._refill()
            return self._tokens

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._updated_at
        if elapsed > 0:
            self._tokens = min(self._capacity, self._tokens + elapsed * self._rate)
            self._updated_at = now

    def try_acquire(self) -> bool:
        with self._lock:
            self._refill()
            if self._tokens >= 1 - _TOKEN_EPSILON:
                self._tokens = max(0.0, self._tokens - 1)
                return True
            return False

    def acquire(self, context: CallContext | None = None) -> None:
        _raise_if_done(context)
        while True:
            with self._lock:
                self._refill()
                if self._tokens >= 1 - _TOKEN_EPSILON:
                    self._tokens = max(0.0, self._tokens - 1)
                    return
                wait_time = max((1 - self._tokens) / self._rate, _MIN_WAIT_S)

            # Waiting happens outside the lock; the token is only taken on
            # the next pass, so an aborted wait leaves the bucket untouched.
            if context is None:
                self._sleep(wait_time)
            elif context.wait(wait_time):
                _raise_if_done(context)


class NoopLimiter:
    """Stand-in used when no rate-limit policy is configured."""

    def try_acquire(self) -> bool:
        return True

    def acquire(self, context: CallContext | None = None) -> None:
        _raise_if_done(context)


def build_rate_limiter(policy: RateLimitPolicy | None) -> TokenBucket | NoopLimiter:
    if policy is None:
        return NoopLimiter()
    return TokenBucket(rate_per_sec=policy.requests_per_second, capacity=policy.burst_size)
