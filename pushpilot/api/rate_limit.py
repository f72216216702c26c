"""In-memory per-visitor rate limiter for the mutating webhook routes.

One token bucket per client key (IP address).  Not shared across
workers -- each process enforces its own quota.

Idle buckets are not tracked individually: a background loop clears the
whole visitor map every ``purge_interval`` seconds.  A returning client
simply gets a fresh, full bucket.
"""

import asyncio
import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from fastapi import Request, Response

from pushpilot.errors import RateLimitedError
from pushpilot.middleware.access_log import scope_client_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_after: float  # seconds until the bucket is full again
    retry_after: float  # seconds until the next token (0 when allowed)

    def headers(self) -> dict[str, str]:
        """Informational back-off hints for the client."""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_after)),
        }
        if not self.allowed:
            headers["Retry-After"] = str(max(1, math.ceil(self.retry_after)))
        return headers


class TokenBucket:
    """Continuously refilling bucket.

    Args:
        capacity: Burst size; the bucket starts full.
        refill_rate: Tokens added per second.
    """

    def __init__(self, capacity: int, refill_rate: float, now: float) -> None:
        self.capacity = capacity
        self.refill_rate = refill_rate
        self.tokens = float(capacity)
        self.last_refill = now
        self._lock = threading.Lock()

    def _refill(self, now: float) -> None:
        elapsed = max(0.0, now - self.last_refill)
        self.tokens = min(float(self.capacity), self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    def take(self, now: float) -> RateLimitDecision:
        """Withdraw one token if available; an empty bucket is left untouched."""
        with self._lock:
            self._refill(now)
            allowed = self.tokens >= 1.0
            if allowed:
                self.tokens -= 1.0
            missing = float(self.capacity) - self.tokens
            return RateLimitDecision(
                allowed=allowed,
                limit=self.capacity,
                remaining=int(self.tokens),
                reset_after=missing / self.refill_rate,
                retry_after=0.0 if allowed else (1.0 - self.tokens) / self.refill_rate,
            )


class VisitorRateLimiter:
    """Token-bucket rate limiter keyed by client.

    Bucket lookup, creation and purge hold the map lock; token withdrawal
    only holds the bucket's own lock, so different visitors never wait on
    each other.

    Args:
        rate: Tokens refilled per second.
        burst: Bucket capacity.
        purge_interval: Seconds between full visitor-map purges.
        clock: Monotonic time source (injectable for tests).
    """

    def __init__(
        self,
        rate: float = 1.0,
        burst: int = 5,
        purge_interval: float = 600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.rate = rate
        self.burst = burst
        self.purge_interval = purge_interval
        self._clock = clock
        self._visitors: dict[str, TokenBucket] = {}
        self._lock = threading.Lock()
        self._purge_task: asyncio.Task | None = None

    def _bucket_for(self, key: str, now: float) -> TokenBucket:
        with self._lock:
            bucket = self._visitors.get(key)
            if bucket is None:
                bucket = TokenBucket(self.burst, self.rate, now)
                self._visitors[key] = bucket
            return bucket

    def check(self, key: str) -> RateLimitDecision:
        now = self._clock()
        return self._bucket_for(key, now).take(now)

    def allow(self, key: str) -> bool:
        """Return True if *key* may proceed, consuming one token."""
        return self.check(key).allowed

    def visitor_count(self) -> int:
        with self._lock:
            return len(self._visitors)

    def purge(self) -> int:
        """Drop every bucket. Returns how many were removed."""
        with self._lock:
            count = len(self._visitors)
            self._visitors.clear()
        return count

    # ── lifecycle ─────────────────────────────────────────────

    async def start_purger(self) -> None:
        """Start the periodic purge loop (call from lifespan startup)."""
        if self._purge_task is None:
            self._purge_task = asyncio.create_task(self._purge_loop())

    async def stop_purger(self) -> None:
        """Cancel the purge loop (call from lifespan shutdown)."""
        if self._purge_task is not None:
            self._purge_task.cancel()
            try:
                await self._purge_task
            except asyncio.CancelledError:
                pass
            self._purge_task = None

    async def _purge_loop(self) -> None:
        while True:
            await asyncio.sleep(self.purge_interval)
            removed = self.purge()
            if removed:
                logger.debug("Purged %d visitor bucket(s)", removed)


def client_key(request: Request) -> str:
    """Identify the visitor the same way the access log does."""
    return scope_client_key(request.scope)


async def enforce_rate_limit(request: Request, response: Response) -> None:
    """Route dependency: reject with 429 when the visitor's bucket is empty.

    Quota headers are attached to both the rejection and the normal response.
    """
    limiter: VisitorRateLimiter = request.app.state.pilot.limiter
    key = client_key(request)
    decision = limiter.check(key)
    headers = decision.headers()
    if not decision.allowed:
        logger.warning("Rate limit exceeded for %s on %s", key, request.url.path)
        raise RateLimitedError(headers=headers)
    response.headers.update(headers)
