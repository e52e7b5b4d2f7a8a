"""
Redis volatile tier for the lookup service.
"""

import json
from typing import Any, Dict, Optional

import redis.asyncio as redis

from shared.logging import get_logger
from shared.errors import AccessLayerException, LocalStoreError


class RedisCache:
    """Volatile tier: JSON envelopes with a per-key expiry.

    Reads and writes raise LocalStoreError when Redis misbehaves; the
    orchestrator decides that such a failure is a miss.
    """

    TIER = "volatile"

    def __init__(self, redis_client: redis.Redis):
        self.redis = redis_client
        self.logger = get_logger("lookup.cache.redis")

        # TTL bounds (seconds)
        self.max_ttl = 24 * 3600
        self.min_ttl = 1

    @classmethod
    def from_url(cls, redis_url: str) -> "RedisCache":
        client = redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
            health_check_interval=30
        )
        return cls(client)

    async def start(self):
        """Start the Redis cache."""
        try:
            await self.redis.ping()
            self.logger.info("Redis cache started")
        except Exception as e:
            self.logger.error("Failed to start Redis cache", error=str(e))
            raise AccessLayerException("REDIS_START_FAILED", str(e))

    async def stop(self):
        """Stop the Redis cache."""
        await self.redis.aclose()
        self.logger.info("Redis cache stopped")

    async def get_envelope(self, cache_key: str) -> Optional[Dict[str, Any]]:
        """Get a cached envelope; None on miss or on an undecodable value."""
        try:
            cached_data = await self.redis.get(cache_key)
        except Exception as e:
            raise LocalStoreError(self.TIER, f"GET failed: {e}", {"cache_key": cache_key})

        if cached_data is None:
            return None

        try:
            data = json.loads(cached_data)
        except (TypeError, ValueError):
            self.logger.warning("Discarding undecodable cache entry", cache_key=cache_key)
            return None

        if not isinstance(data, dict):
            self.logger.warning("Discarding malformed cache entry", cache_key=cache_key)
            return None
        return data

    async def set_envelope(self, cache_key: str, envelope: Dict[str, Any], ttl_seconds: int) -> None:
        """Cache an envelope, overwriting any previous value."""
        ttl_seconds = max(self.min_ttl, min(self.max_ttl, int(ttl_seconds)))
        try:
            await self.redis.setex(cache_key, ttl_seconds, json.dumps(envelope))
        except Exception as e:
            raise LocalStoreError(self.TIER, f"SETEX failed: {e}", {"cache_key": cache_key})

        self.logger.debug("Cached entry", cache_key=cache_key, ttl=ttl_seconds)

    async def health_check(self) -> bool:
        """Check Redis health."""
        try:
            await self.redis.ping()
            return True
        except Exception:
            return False
