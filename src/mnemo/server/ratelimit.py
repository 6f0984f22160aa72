"""Fixed-window rate limiting per caller identity (simple in-memory)."""

from __future__ import annotations

import logging
import time
from typing import Callable

from aiohttp import web

logger = logging.getLogger(__name__)


class RateLimiter:
    """Count requests per caller inside fixed windows of ``window`` seconds."""

    def __init__(self, limit: int, window: int = 60, clock: Callable[[], float] = time.monotonic) -> None:
        self.limit = limit
        self.window = window
        self._clock = clock
        self._counters: dict[str, tuple[int, int]] = {}  # caller → (window index, count)

    def allow(self, caller: str) -> bool:
        if self.limit <= 0:
            return True
        current = int(self._clock() // self.window)
        window, count = self._counters.get(caller, (current, 0))
        if window != current:
            window, count = current, 0
        if count >= self.limit:
            return False
        self._counters[caller] = (window, count + 1)
        if len(self._counters) > 10000:
            self._prune(current)
        return True

    def _prune(self, current: int) -> None:
        for caller in [c for c, (w, _) in self._counters.items() if w != current]:
            del self._counters[caller]


def caller_identity(request: web.Request) -> str:
    return request.headers.get("X-Agent-Id") or request.remote or "unknown"


def rate_limit_middleware(limiter: RateLimiter):
    @web.middleware
    async def middleware(request: web.Request, handler):
        caller = caller_identity(request)
        if not limiter.allow(caller):
            logger.warning("Rate limit exceeded for %s", caller)
            return web.json_response({"error": "Rate limit exceeded"}, status=429)
        return await handler(request)

    return middleware
