import time
from dataclasses import dataclass
from typing import Callable

from cachetools import TTLCache
from fastapi import Request


@dataclass
class RateLimitState:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_at)),
        }

    def retry_after(self, now: float) -> int:
        return max(1, int(self.reset_at - now + 0.999))


@dataclass
class _Window:
    count: int
    reset_at: float


class FixedWindowRateLimiter:
    """Per-client counter reset once the window elapses; state is process local."""

    def __init__(self, limit: int, window: int, *, maxsize: int = 10_000, clock: Callable[[], float] = time.time) -> None:
        self.limit = limit
        self.window = window
        self._clock = clock
        self._windows: TTLCache[str, _Window] = TTLCache(maxsize=maxsize, ttl=window, timer=clock)

    def hit(self, key: str) -> RateLimitState:
        now = self._clock()
        record = self._windows.get(key)
        if record is None or now >= record.reset_at:
            record = _Window(count=1, reset_at=now + self.window)
            self._windows[key] = record
            return RateLimitState(True, self.limit, self.limit - 1, record.reset_at)
        if record.count >= self.limit:
            return RateLimitState(False, self.limit, 0, record.reset_at)
        record.count += 1
        return RateLimitState(True, self.limit, self.limit - record.count, record.reset_at)

    def now(self) -> float:
        return self._clock()


def client_key(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client is not None:
        return request.client.host
    return "unknown"
