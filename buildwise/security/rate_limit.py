"""In-process sliding-window rate limiting for the resolve endpoint.

The limiter is an explicit object owned by the server lifespan rather than a
module-level timer.  It keeps a map of key -> hit timestamps read from an
injectable monotonic clock, so tests can drive time directly.

Stale keys are only dropped by :meth:`SlidingWindowRateLimiter.sweep`; the
lifespan runs :func:`run_sweeper` on a fixed interval to call it.

Keys are namespaced by ``"{operation}:{project_id}:{actor}"`` so actors in
different projects never share a bucket.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Callable

logger = logging.getLogger(__name__)


class SlidingWindowRateLimiter:
    """Allow at most ``limit`` hits per key within any ``window_seconds`` span.

    Args:
        limit:          Maximum hits per key inside the window.  Must be >= 1.
        window_seconds: Window length in seconds.  Must be > 0.
        clock:          Zero-argument callable returning monotonic seconds.
    """

    def __init__(
        self,
        limit: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[str, deque[float]] = {}

    def _prune(self, bucket: deque[float], now: float) -> None:
        cutoff = now - self.window_seconds
        while bucket and bucket[0] <= cutoff:
            bucket.popleft()

    def hit(self, key: str) -> bool:
        """Record a hit for ``key``.

        Returns:
            ``True`` if the hit is allowed, ``False`` if the key is over its
            limit.  Denied hits are not recorded.
        """
        now = self._clock()
        bucket = self._hits.setdefault(key, deque())
        self._prune(bucket, now)
        if len(bucket) >= self.limit:
            return False
        bucket.append(now)
        return True

    def remaining(self, key: str) -> int:
        bucket = self._hits.get(key)
        if not bucket:
            return self.limit
        self._prune(bucket, self._clock())
        return max(self.limit - len(bucket), 0)

    def reset(self, key: str | None = None) -> None:
        if key is None:
            self._hits.clear()
        else:
            self._hits.pop(key, None)

    def sweep(self) -> int:
        """Drop expired timestamps and empty keys.

        Returns:
            Number of keys removed.
        """
        now = self._clock()
        removed = 0
        for key in list(self._hits):
            bucket = self._hits[key]
            self._prune(bucket, now)
            if not bucket:
                del self._hits[key]
                removed += 1
        return removed

    def __len__(self) -> int:
        return len(self._hits)


def get_rate_limit_key(operation: str, project_id: str, actor: str) -> str:
    """Return ``"{operation}:{project_id}:{actor}"``."""
    return f"{operation}:{project_id}:{actor}"


async def run_sweeper(limiter: SlidingWindowRateLimiter, interval_seconds: float) -> None:
    """Call ``limiter.sweep()`` every ``interval_seconds`` until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        removed = limiter.sweep()
        if removed:
            logger.debug("Rate limiter sweep removed %d idle key(s)", removed)
