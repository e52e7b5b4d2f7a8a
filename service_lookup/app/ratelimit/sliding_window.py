"""
Distributed sliding-window budget for outgoing Riot API calls.

The development API key allows 20 calls per second and 100 calls per two
minutes across every process sharing it, so the budget lives in Redis.
"""

import time
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, Any, List, Optional, Sequence, Tuple

import redis.asyncio as redis

from shared.logging import get_logger
from shared.errors import RateLimitedError


@dataclass(frozen=True)
class Window:
    """One sliding window: at most ``limit`` calls per ``seconds``."""
    name: str
    limit: int
    seconds: float


def default_windows(per_second: int = 20, per_two_minutes: int = 100) -> List[Window]:
    return [
        Window("second", per_second, 1.0),
        Window("two_minutes", per_two_minutes, 120.0),
    ]


class SlidingWindowRateLimiter:
    """Sliding-window rate limiter over Redis sorted sets."""

    def __init__(
        self,
        redis_client: Optional[redis.Redis],
        windows: Sequence[Window],
        prefix: str = "ratelimit:riotapi",
        clock: Callable[[], float] = time.time,
    ):
        self.redis = redis_client
        self.windows = list(windows)
        self.prefix = prefix
        self.logger = get_logger("lookup.rate_limiter")
        self._clock = clock

    def _make_key(self, window: Window) -> str:
        """Generate rate limit key."""
        return f"{self.prefix}:{window.name}"

    async def acquire(self, endpoint: str) -> None:
        """Consume one call from every window or raise RateLimitedError.

        Fails open when Redis is unavailable: the upstream's own 429 is the
        backstop.
        """
        if self.redis is None:
            return

        taken = []
        for window in self.windows:
            try:
                status = await self._check_window(window)
            except Exception as e:
                self.logger.error("Rate limit check error", window=window.name, error=str(e))
                continue

            taken.append((status["key"], status["member"]))
            if not status["allowed"]:
                # A refused call holds no slot in any window
                await self._release(taken)
                self.logger.warning(
                    "Upstream call budget exhausted",
                    window=window.name,
                    endpoint=endpoint,
                    current_count=status["current_count"],
                    limit=window.limit,
                )
                raise RateLimitedError(
                    f"Riot API call budget exhausted ({window.name} window)",
                    retry_after=window.seconds,
                    details={"window": window.name, "limit": window.limit},
                )

    async def _check_window(self, window: Window) -> Dict[str, Any]:
        key = self._make_key(window)
        now = self._clock()
        member = f"{now:.6f}:{uuid.uuid4().hex}"

        async with self.redis.pipeline(transaction=True) as pipeline:
            pipeline.zremrangebyscore(key, 0, now - window.seconds)
            pipeline.zadd(key, {member: now})
            pipeline.zcard(key)
            pipeline.expire(key, int(window.seconds) + 1)
            results = await pipeline.execute()

        current_count = int(results[2])
        return {
            "key": key,
            "member": member,
            "allowed": current_count <= window.limit,
            "current_count": current_count,
        }

    async def _release(self, taken: List[Tuple[str, str]]):
        for key, member in taken:
            try:
                await self.redis.zrem(key, member)
            except Exception as e:
                self.logger.error("Rate limit slot release error", key=key, error=str(e))
