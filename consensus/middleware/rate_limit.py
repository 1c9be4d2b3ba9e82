"""Inbound rate limiting for API routes.

Uses a sliding window to restrict how many requests each key can make
within a configurable time window.  The handlers key on ``route:client``.

Symbol lookups: ``settings.rate_limit_default`` requests / minute
Batch refresh: ``settings.rate_limit_refresh`` requests / minute (each one
fans out to many upstream calls)
"""

from __future__ import annotations

import asyncio
import time
from collections import defaultdict, deque
from typing import Deque, Dict

from consensus.config import settings


class RateLimiter:
    """Sliding-window rate limiter.

    Safe under concurrent tasks via asyncio.Lock.  Each key gets its own window.

    Attributes:
        default_max_requests: Default cap per key (per window).
        default_window_seconds: Default sliding-window length in seconds.
    """

    def __init__(
        self,
        default_max_requests: int = 60,
        default_window_seconds: int = 60,
        enabled: bool = True,
    ) -> None:
        self.default_max_requests = default_max_requests
        self.default_window_seconds = default_window_seconds
        self.enabled = enabled
        # route -> deque of timestamps
        self._requests: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = asyncio.Lock()

    async def check_rate_limit(
        self,
        route: str,
        max_requests: int | None = None,
        window_seconds: int | None = None,
    ) -> tuple[bool, str | None]:
        """Check whether a request to *route* is within the rate limit.

        Returns:
            (allowed, error_message) – *allowed* is ``True`` if the request
            should proceed.  *error_message* is ``None`` when allowed, or a
            human-readable explanation when denied.
        """
        if not self.enabled:
            return True, None

        max_req = max_requests or self.default_max_requests
        window = window_seconds or self.default_window_seconds

        async with self._lock:
            now = time.monotonic()
            timestamps = self._requests[route]

            while timestamps and timestamps[0] <= now - window:
                timestamps.popleft()

            if len(timestamps) >= max_req:
                retry_after = int(timestamps[0] + window - now) + 1
                return False, (
                    f"Rate limit exceeded for '{route}'. "
                    f"Max {max_req} requests per {window}s. "
                    f"Retry after {retry_after}s."
                )

            timestamps.append(now)
            return True, None

    async def reset(self, route: str | None = None) -> None:
        """Reset counters.  If *route* is ``None``, reset everything."""
        async with self._lock:
            if route:
                self._requests.pop(route, None)
            else:
                self._requests.clear()


# Module-level singleton used by the route handlers.
rate_limiter = RateLimiter(
    default_max_requests=settings.rate_limit_default,
    enabled=settings.rate_limit_enabled,
)

ROUTE_RATE_LIMITS: dict[str, dict[str, int]] = {
    "get_stock": {"max_requests": settings.rate_limit_default, "window_seconds": 60},
    "get_analyst": {"max_requests": settings.rate_limit_default, "window_seconds": 60},
    "refresh_cache": {"max_requests": settings.rate_limit_refresh, "window_seconds": 60},
    "clear_cache": {"max_requests": settings.rate_limit_refresh, "window_seconds": 60},
}
