"""Fixed-window rate limiting, keyed by client address.

Learn: Each (scope, client) pair gets a window:
- first hit            → count=1, reset_at = now + window
- hits inside window   → count += 1
- once count >= max    → further hits are rejected (429) until reset_at
- first hit after reset_at starts a fresh window

Counters live behind the WindowStore interface:
- InMemoryWindowStore: per-process dict guarded by a lock (default;
  correct only for single-instance deployments)
- RedisWindowStore: INCR + PEXPIRE, shared by every instance

Routes opt in with a dependency:

    @router.post("/login", dependencies=[Depends(rate_limit(60_000, 10, "auth"))])
"""

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import structlog
from fastapi import Request, Response
from redis.exceptions import RedisError

from medconnect import cache
from medconnect.config import settings
from medconnect.errors import TooManyRequests

logger = structlog.get_logger()


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class WindowHit:
    allowed: bool
    count: int
    reset_at_ms: int


class WindowStore(Protocol):
    async def hit(self, key: str, window_ms: int, max_requests: int) -> WindowHit: ...


class InMemoryWindowStore:
    """Process-local counters: {key: [count, reset_at_ms]}.

    Expired windows are dropped whenever an unseen key arrives while the
    table holds `max_keys` entries.
    """

    def __init__(self, clock: Callable[[], int] = _now_ms, max_keys: int = 10_000):
        self.clock = clock
        self.max_keys = max_keys
        self._windows: dict[str, list[int]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._windows)

    def _prune(self, now: int) -> None:
        expired = [k for k, (_, reset_at) in self._windows.items() if now > reset_at]
        for k in expired:
            del self._windows[k]

    async def hit(self, key: str, window_ms: int, max_requests: int) -> WindowHit:
        now = self.clock()
        with self._lock:
            window = self._windows.get(key)
            if window is None and len(self._windows) >= self.max_keys:
                self._prune(now)
            if window is None or now > window[1]:
                window = [1, now + window_ms]
                self._windows[key] = window
                return WindowHit(True, 1, window[1])

            if window[0] >= max_requests:
                return WindowHit(False, window[0], window[1])

            window[0] += 1
            return WindowHit(True, window[0], window[1])

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


class RedisWindowStore:
    """Shared counters in Redis. Fails open if Redis errors out."""

    def __init__(self, redis, prefix: str = "medconnect:rl"):
        self.redis = redis
        self.prefix = prefix

    async def hit(self, key: str, window_ms: int, max_requests: int) -> WindowHit:
        redis_key = f"{self.prefix}:{key}"
        now = _now_ms()
        try:
            count = await self.redis.incr(redis_key)
            if count == 1:
                await self.redis.pexpire(redis_key, window_ms)
                ttl = window_ms
            else:
                ttl = await self.redis.pttl(redis_key)
                if ttl < 0:  # key lost its expiry; restart the window
                    await self.redis.pexpire(redis_key, window_ms)
                    ttl = window_ms
        except RedisError as e:
            logger.warning("rate_limit.redis_error", error=str(e))
            return WindowHit(True, 0, now + window_ms)

        return WindowHit(count <= max_requests, min(count, max_requests), now + ttl)


# Shared default store (in-memory); swapped for Redis by get_window_store().
memory_store = InMemoryWindowStore()


def get_window_store() -> WindowStore:
    if settings.rate_limit_backend == "redis" and cache.redis_available():
        return RedisWindowStore(cache.get_redis())
    return memory_store


def client_key(request: Request) -> str:
    """Identify the caller for rate limiting.

    X-Forwarded-For is only honoured when MEDCONNECT_TRUST_FORWARDED_FOR is
    set, i.e. when a trusted reverse proxy overwrites that header.
    """
    if settings.trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def rate_limit(
    window_ms: int,
    max_requests: int,
    scope: str = "api",
    store: Optional[WindowStore] = None,
):
    """Build a FastAPI dependency enforcing `max_requests` per `window_ms`."""

    async def _enforce(request: Request, response: Response) -> None:
        active_store = store if store is not None else get_window_store()
        result = await active_store.hit(
            f"{scope}:{client_key(request)}", window_ms, max_requests
        )
        if not result.allowed:
            retry_after = max(1, math.ceil((result.reset_at_ms - _now_ms()) / 1000))
            logger.info(
                "rate_limit.exceeded",
                scope=scope,
                client=client_key(request),
                limit=max_requests,
            )
            raise TooManyRequests(retry_after=retry_after)

        response.headers["X-RateLimit-Limit"] = str(max_requests)
        response.headers["X-RateLimit-Remaining"] = str(max(0, max_requests - result.count))

    return _enforce
