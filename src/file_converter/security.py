"""Request admission control: fixed-window rate limiting per client."""

from __future__ import annotations

import math
import time
from functools import lru_cache
from typing import Callable, Dict, Tuple

from fastapi import Depends, Request

from .config import Settings, settings_dependency
from .errors import RateLimited


class FixedWindowRateLimiter:
    """Counts hits per client inside consecutive windows of ``interval_sec``.

    Requests over the limit are rejected, never queued.
    """

    def __init__(self, max_requests: int, interval_sec: int, clock: Callable[[], float] = time.monotonic) -> None:
        self.max_requests = max_requests
        self.interval_sec = interval_sec
        self._clock = clock
        self._windows: Dict[str, Tuple[float, int]] = {}

    def hit(self, client: str) -> float:
        """Register a request; returns 0 when admitted, else seconds until the window resets."""
        now = self._clock()
        started, count = self._windows.get(client, (now, 0))
        if now - started >= self.interval_sec:
            started, count = now, 0
        if count >= self.max_requests:
            return max(started + self.interval_sec - now, 0.001)
        self._windows[client] = (started, count + 1)
        self._evict(now)
        return 0.0

    def _evict(self, now: float) -> None:
        if len(self._windows) < 10_000:
            return
        expired = [key for key, (started, _) in self._windows.items() if now - started >= self.interval_sec]
        for key in expired:
            del self._windows[key]


@lru_cache
def get_rate_limiter(max_requests: int, interval_sec: int) -> FixedWindowRateLimiter:
    return FixedWindowRateLimiter(max_requests, interval_sec)


def client_key(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def enforce_rate_limit(request: Request, settings: Settings = Depends(settings_dependency)) -> None:
    cfg = settings.rate_limit
    if not cfg.enabled:
        return

    limiter = get_rate_limiter(cfg.max_requests, cfg.interval_sec)
    retry_after = limiter.hit(client_key(request))
    if retry_after:
        raise RateLimited(retry_after=math.ceil(retry_after))
