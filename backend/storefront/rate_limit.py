"""
Per-IP fixed-window rate limiting.

Each named limiter keeps {ip: (count, reset_at)} in process memory. State is
not shared between worker processes, so limits are per process; run a
single worker or replace RateLimiterRegistry with a shared-store version.
"""

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from fastapi import Depends, Request

from storefront.dependencies import client_ip, get_rate_limiters
from storefront.errors import RateLimited
from storefront.observability import rate_limit_rejections_total

logger = logging.getLogger("storefront.rate_limit")

MESSAGES = {
    "checkout": "Too many checkout attempts. Please wait before trying again.",
    "cart": "Too many cart operations. Please wait before trying again.",
    "search": "Too many search requests. Please wait before trying again.",
    "login": "Too many login attempts. Please wait before trying again.",
    "api": "Too many API requests. Please wait before trying again.",
}


@dataclass
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after: int


class FixedWindowRateLimiter:
    def __init__(
        self,
        name: str,
        window_seconds: float,
        max_requests: int,
        message: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self.message = message or MESSAGES.get(name, RateLimited.message)
        self._clock = clock
        self._store: Dict[str, Tuple[int, float]] = {}
        self._lock = threading.Lock()

    def hit(self, key: str) -> RateLimitDecision:
        """Count one request for `key` and decide whether it may proceed."""
        now = self._clock()
        with self._lock:
            count, reset_at = self._store.get(key, (0, 0.0))
            if now >= reset_at:
                count, reset_at = 0, now + self.window_seconds
            count += 1
            self._store[key] = (count, reset_at)

        if count > self.max_requests:
            return RateLimitDecision(False, 0, max(1, math.ceil(reset_at - now)))
        return RateLimitDecision(True, self.max_requests - count, 0)

    def check(self, key: str) -> None:
        decision = self.hit(key)
        if not decision.allowed:
            rate_limit_rejections_total.labels(limiter=self.name).inc()
            logger.warning("Rate limit %s exceeded for %s (retry in %ss)", self.name, key, decision.retry_after)
            raise RateLimited(self.message, retry_after=decision.retry_after)

    def reset(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()


class RateLimiterRegistry:
    """Named limiters, each with independent state and limits."""

    def __init__(self, limits: Dict[str, Tuple[float, int]], clock: Callable[[], float] = time.monotonic):
        self._limiters = {
            name: FixedWindowRateLimiter(name, window, maximum, clock=clock)
            for name, (window, maximum) in limits.items()
        }

    def __getitem__(self, name: str) -> FixedWindowRateLimiter:
        return self._limiters[name]

    def __contains__(self, name: str) -> bool:
        return name in self._limiters

    def clear(self) -> None:
        for limiter in self._limiters.values():
            limiter.clear()


def rate_limit(name: str):
    """Route dependency: `dependencies=[Depends(rate_limit("checkout"))]`."""

    def dependency(request: Request, registry: RateLimiterRegistry = Depends(get_rate_limiters)) -> None:
        registry[name].check(client_ip(request))

    return dependency
