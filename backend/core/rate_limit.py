import asyncio
import time
from collections import deque
from typing import Callable, Deque, Dict, Tuple

from fastapi import HTTPException, Request, status

from .request_context import get_client_ip


class RateLimiter:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._windows: Dict[str, int] = {}
        self._lock = asyncio.Lock()

    def _sweep(self, now: float) -> None:
        stale = [key for key, bucket in self._hits.items() if not bucket or now - bucket[-1] > self._windows[key]]
        for key in stale:
            del self._hits[key]
            del self._windows[key]

    async def hit(self, key: str, limit: int, window: int) -> Tuple[bool, float]:
        now = self._clock()
        async with self._lock:
            self._sweep(now)
            self._windows[key] = window
            bucket = self._hits.setdefault(key, deque())
            while bucket and now - bucket[0] > window:
                bucket.popleft()
            if len(bucket) >= limit:
                retry_after = max(0.0, window - (now - bucket[0]))
                return False, retry_after
            bucket.append(now)
            return True, 0.0

    def reset(self) -> None:
        self._hits.clear()
        self._windows.clear()

    def __len__(self) -> int:
        return len(self._hits)


limiter = RateLimiter()


def rate_limit_dependency(scope: str, limit: int, window_seconds: int) -> Callable[[Request], None]:
    async def dependency(request: Request) -> None:
        client_ip = get_client_ip(request) or "anonymous"
        key = f"{scope}:{client_ip}"
        allowed, retry_after = await limiter.hit(key, limit, window_seconds)
        if not allowed:
            headers = {"Retry-After": str(int(retry_after) or window_seconds)}
            raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Too many requests.", headers=headers)

    return dependency
