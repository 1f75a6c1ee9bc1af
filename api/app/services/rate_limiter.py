"""Sliding-window rate limiting keyed by tenant (or client IP).

Counts live in a Redis sorted set per key when Redis is reachable so limits
hold across instances; otherwise an in-process deque per key is used.
"""

import logging
import math
import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Optional

import redis.asyncio as aioredis

from app.core.config import Settings
from app.core.exceptions import RateLimitExceededError
from app.metrics.translation_metrics import rate_limit_rejections_total

logger = logging.getLogger(__name__)


def rate_limit_key(tenant_id: Optional[str], client_ip: Optional[str] = None) -> str:
    """Tenant-aware limiter key: ``tenant:<id>``, else ``ip:<address>``."""
    if tenant_id:
        return f"tenant:{tenant_id}"
    return f"ip:{client_ip or 'unknown'}"


@dataclass
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after_seconds: int = 0


class SlidingWindowRateLimiter:
    """Admit at most ``max_requests`` per key within ``window_seconds``.

    Attributes:
        scope: Name used in logs and metrics (standard, batch, hourly)
        key_prefix: Prefix of Redis keys (after the global Redis prefix)
        key_transform: Applied to the caller's key (e.g. ``hourly:`` prefix)
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        scope: str = "standard",
        key_prefix: str = "rl:",
        redis_client: Optional[aioredis.Redis] = None,
        redis_key_prefix: str = "tl:",
        enabled: bool = True,
        key_transform: Optional[Callable[[str], str]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.scope = scope
        self.key_prefix = f"{redis_key_prefix}{key_prefix}"
        self.redis = redis_client
        self.enabled = enabled
        self.key_transform = key_transform
        self._clock = clock
        self._windows: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    def _retry_after(self, oldest: float, now: float) -> int:
        return max(1, math.ceil(oldest + self.window_seconds - now))

    async def _hit_redis(self, key: str, now: float) -> RateLimitDecision:
        redis_key = f"{self.key_prefix}{key}"
        member = f"{now}:{uuid.uuid4().hex[:8]}"
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.zremrangebyscore(redis_key, 0, now - self.window_seconds)
            pipe.zadd(redis_key, {member: now})
            pipe.zcard(redis_key)
            pipe.zrange(redis_key, 0, 0, withscores=True)
            pipe.expire(redis_key, math.ceil(self.window_seconds))
            _, _, count, oldest, _ = await pipe.execute()

        if count <= self.max_requests:
            return RateLimitDecision(True, self.max_requests, self.max_requests - count)

        # Rejected requests do not consume the window
        await self.redis.zrem(redis_key, member)
        oldest_ts = oldest[0][1] if oldest else now
        return RateLimitDecision(
            False, self.max_requests, 0, self._retry_after(oldest_ts, now)
        )

    def _hit_local(self, key: str, now: float) -> RateLimitDecision:
        with self._lock:
            window = self._windows.setdefault(key, deque())
            while window and window[0] <= now - self.window_seconds:
                window.popleft()
            if len(window) >= self.max_requests:
                return RateLimitDecision(
                    False, self.max_requests, 0, self._retry_after(window[0], now)
                )
            window.append(now)
            return RateLimitDecision(
                True, self.max_requests, self.max_requests - len(window)
            )

    async def hit(self, key: str) -> RateLimitDecision:
        """Count one request for key and decide whether it is admitted."""
        if not self.enabled:
            return RateLimitDecision(True, self.max_requests, self.max_requests)
        if self.key_transform is not None:
            key = self.key_transform(key)
        now = self._clock()
        if self.redis is not None:
            try:
                return await self._hit_redis(key, now)
            except Exception as e:
                logger.warning(
                    f"Redis rate limiting failed for {self.scope}, using in-process window: {e}"
                )
        return self._hit_local(key, now)

    async def check(self, key: str) -> RateLimitDecision:
        """Like hit(), but raises when the request is not admitted.

        Raises:
            RateLimitExceededError: With the number of seconds to wait
        """
        decision = await self.hit(key)
        if not decision.allowed:
            rate_limit_rejections_total.labels(scope=self.scope).inc()
            logger.warning(
                f"Rate limit exceeded ({self.scope}) for {key}: "
                f"retry after {decision.retry_after_seconds}s"
            )
            raise RateLimitExceededError(
                key, decision.limit, decision.retry_after_seconds
            )
        return decision


def build_rate_limiters(
    settings: Settings, redis_client: Optional[aioredis.Redis] = None
) -> Dict[str, SlidingWindowRateLimiter]:
    """Standard, batch (stricter) and hourly limiters from configuration."""
    common = {
        "redis_client": redis_client,
        "redis_key_prefix": settings.REDIS_KEY_PREFIX,
        "enabled": settings.RATE_LIMIT_ENABLED,
    }
    return {
        "standard": SlidingWindowRateLimiter(
            settings.RATE_LIMIT_MAX_REQUESTS,
            settings.RATE_LIMIT_WINDOW_SECONDS,
            scope="standard",
            key_prefix="rl:",
            **common,
        ),
        "batch": SlidingWindowRateLimiter(
            max(1, settings.RATE_LIMIT_MAX_REQUESTS // settings.RATE_LIMIT_BATCH_DIVISOR),
            settings.RATE_LIMIT_WINDOW_SECONDS,
            scope="batch",
            key_prefix="rl:batch:",
            **common,
        ),
        "hourly": SlidingWindowRateLimiter(
            settings.RATE_LIMIT_MAX_REQUESTS_HOUR,
            3600,
            scope="hourly",
            key_prefix="rl:hourly:",
            key_transform=lambda key: f"hourly:{key}",
            **common,
        ),
    }
