"""
Unit tests for the Redis volatile tier.
"""

import json

import pytest
from unittest.mock import AsyncMock

from shared.errors import AccessLayerException, LocalStoreError
from service_lookup.app.cache.redis_cache import RedisCache


class TestRedisCache:
    """Test cases for RedisCache."""

    @pytest.fixture
    def redis_client(self):
        return AsyncMock()

    @pytest.fixture
    def cache(self, redis_client):
        return RedisCache(redis_client)

    @pytest.mark.asyncio
    async def test_get_envelope_hit(self, cache, redis_client):
        envelope = {"kind": "ranked", "cached_at": "2024-06-01T12:00:00Z", "payload": []}
        redis_client.get.return_value = json.dumps(envelope)

        assert await cache.get_envelope("player:ranked:kr:p") == envelope
        redis_client.get.assert_awaited_once_with("player:ranked:kr:p")

    @pytest.mark.asyncio
    async def test_get_envelope_miss(self, cache, redis_client):
        redis_client.get.return_value = None

        assert await cache.get_envelope("player:ranked:kr:p") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["not json", "[1, 2]"])
    async def test_undecodable_entry_is_a_miss(self, cache, redis_client, raw):
        redis_client.get.return_value = raw

        assert await cache.get_envelope("player:ranked:kr:p") is None

    @pytest.mark.asyncio
    async def test_get_failure_raises_local_store_error(self, cache, redis_client):
        redis_client.get.side_effect = ConnectionError("refused")

        with pytest.raises(LocalStoreError) as exc_info:
            await cache.get_envelope("player:ranked:kr:p")

        assert exc_info.value.tier == "volatile"

    @pytest.mark.asyncio
    async def test_set_envelope(self, cache, redis_client):
        envelope = {"kind": "live_game", "cached_at": "2024-06-01T12:00:00Z", "payload": None}

        await cache.set_envelope("spectator:currentgame:kr:p", envelope, 30)

        redis_client.setex.assert_awaited_once_with("spectator:currentgame:kr:p", 30, json.dumps(envelope))

    @pytest.mark.asyncio
    async def test_set_failure_raises_local_store_error(self, cache, redis_client):
        redis_client.setex.side_effect = TimeoutError("slow")

        with pytest.raises(LocalStoreError):
            await cache.set_envelope("k", {"kind": "x", "cached_at": "2024-06-01T12:00:00Z"}, 60)

    @pytest.mark.asyncio
    async def test_start_fails_when_redis_is_unreachable(self, cache, redis_client):
        redis_client.ping.side_effect = ConnectionError("refused")

        with pytest.raises(AccessLayerException) as exc_info:
            await cache.start()

        assert exc_info.value.code == "REDIS_START_FAILED"

    @pytest.mark.asyncio
    async def test_health_check(self, cache, redis_client):
        assert await cache.health_check() is True

        redis_client.ping.side_effect = ConnectionError("refused")
        assert await cache.health_check() is False
