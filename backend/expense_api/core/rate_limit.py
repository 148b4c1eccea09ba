import asyncio
import logging
import math
import secrets
import threading
import time
from dataclasses import dataclass

from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    retry_after: int | None = None


class RateLimiter:
    """Sliding-window limiter backed by Redis, or by process memory when no Redis is configured.

    A Redis failure resolves to "allowed" and is logged (fail-open).
    """

    # Returns 0 when the hit is accepted, otherwise milliseconds until the
    # oldest hit leaves the window (at least 1).
    _REDIS_WINDOW_SCRIPT = """
local key = KEYS[1]
local now_ms = tonumber(ARGV[1])
local window_ms = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
local member = ARGV[4]
local ttl = tonumber(ARGV[5])
local cutoff = now_ms - window_ms

redis.call("ZREMRANGEBYSCORE", key, 0, cutoff)
local count = redis.call("ZCARD", key)
if count >= limit then
  redis.call("EXPIRE", key, ttl)
  local oldest = redis.call("ZRANGE", key, 0, 0, "WITHSCORES")
  local wait = window_ms
  if oldest[2] then
    wait = tonumber(oldest[2]) + window_ms - now_ms
  end
  if wait < 1 then
    wait = 1
  end
  return wait
end

redis.call("ZADD", key, now_ms, member)
redis.call("EXPIRE", key, ttl)
return 0
"""

    def __init__(
        self,
        redis_url: str | None = None,
        key_prefix: str = "expense",
        redis_client: Redis | None = None,
        socket_timeout: float = 0.5,
    ) -> None:
        self._events: dict[str, list[float]] = {}
        self._last_sweep = time.time()
        self._lock = threading.Lock()
        self._key_prefix = key_prefix
        self._redis = redis_client
        if self._redis is None and redis_url:
            # Connects lazily on first command.
            self._redis = Redis.from_url(
                redis_url,
                decode_responses=False,
                socket_timeout=socket_timeout,
                socket_connect_timeout=socket_timeout,
            )

    @property
    def uses_redis(self) -> bool:
        return self._redis is not None

    def _redis_key(self, key: str) -> str:
        return f"{self._key_prefix}:ratelimit:{key}"

    async def _check_redis(self, key: str, limit: int, window_seconds: int) -> RateLimitDecision:
        now_ms = int(time.time() * 1000)
        member = f"{now_ms}-{secrets.token_hex(6)}"
        window_ms = window_seconds * 1000
        ttl = window_seconds + 1
        result = await self._redis.eval(
            self._REDIS_WINDOW_SCRIPT,
            1,
            self._redis_key(key),
            now_ms,
            window_ms,
            limit,
            member,
            ttl,
        )
        wait_ms = int(result or 0)
        if wait_ms <= 0:
            return RateLimitDecision(allowed=True)
        return RateLimitDecision(allowed=False, retry_after=max(1, math.ceil(wait_ms / 1000)))

    def _sweep(self, now: float, cutoff: float, window_seconds: int) -> None:
        # Drop keys whose newest hit has left the window.
        if now - self._last_sweep < window_seconds:
            return
        self._last_sweep = now
        for stale in [k for k, events in self._events.items() if not events or events[-1] <= cutoff]:
            del self._events[stale]

    async def _check_local(self, key: str, limit: int, window_seconds: int) -> RateLimitDecision:
        now = time.time()
        cutoff = now - window_seconds
        with self._lock:
            self._sweep(now, cutoff, window_seconds)
            events = [ts for ts in self._events.get(key, []) if ts > cutoff]
            if len(events) >= limit:
                self._events[key] = events
                retry_after = max(1, math.ceil(events[0] + window_seconds - now))
                return RateLimitDecision(allowed=False, retry_after=retry_after)
            events.append(now)
            self._events[key] = events
            return RateLimitDecision(allowed=True)

    async def check(self, key: str, limit: int, window_seconds: int) -> RateLimitDecision:
        limit = max(1, int(limit))
        window_seconds = max(1, int(window_seconds))

        if self._redis is None:
            return await self._check_local(key, limit, window_seconds)

        try:
            return await self._check_redis(key, limit, window_seconds)
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            logger.warning("Rate limiter backend unavailable, allowing request for %s: %s", key, exc)
            return RateLimitDecision(allowed=True)

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
