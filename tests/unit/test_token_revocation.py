"""Unit tests for the Redis-backed deny-list store."""

from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.auth.errors import StoreUnavailable
from app.auth.token_engine import TokenEngine
from app.auth.token_revocation import RedisRevocationStore


@pytest.fixture()
def store(redis_client) -> RedisRevocationStore:
    return RedisRevocationStore(redis_client)


class TestKeyFormat:
    def test_make_key(self, store):
        assert store._make_key("abc123") == "token:deny:abc123"

    def test_custom_prefix(self, redis_client):
        assert RedisRevocationStore(redis_client, prefix="x:")._make_key("a") == "x:a"


class TestSetGet:
    async def test_missing_entry_reads_none(self, store):
        assert await store.get("unknown") is None

    async def test_set_then_get(self, store, redis_client):
        created = await store.set("jti-1", "1700000000", ttl_seconds=120)

        assert created is True
        assert await store.get("jti-1") == "1700000000"
        assert 0 < await redis_client.ttl("token:deny:jti-1") <= 120

    async def test_set_does_not_overwrite(self, store, redis_client):
        await store.set("jti-1", "first", ttl_seconds=120)

        created = await store.set("jti-1", "second", ttl_seconds=5000)

        assert created is False
        assert await store.get("jti-1") == "first"
        assert await redis_client.ttl("token:deny:jti-1") <= 120

    async def test_delete(self, store):
        await store.set("jti-1", "v", ttl_seconds=60)

        assert await store.delete("jti-1") is True
        assert await store.get("jti-1") is None
        assert await store.delete("jti-1") is False


class TestEngineOnRedis:
    async def test_revoke_and_verify_through_redis(self, key_pair, store, redis_client):
        engine = TokenEngine(key_pair, store, expiry_seconds=600)
        issued = engine.issue("user-42")

        await engine.revoke(issued.claims.jti, issued.claims.exp)

        assert await store.get(issued.claims.jti) is not None
        assert 0 < await redis_client.ttl(f"token:deny:{issued.claims.jti}") <= 600

    async def test_redis_errors_become_store_unavailable(self, key_pair):
        redis = AsyncMock()
        redis.get.side_effect = RedisConnectionError("Connection refused")
        redis.set.side_effect = RedisConnectionError("Connection refused")
        engine = TokenEngine(key_pair, RedisRevocationStore(redis), expiry_seconds=600)
        issued = engine.issue("user-42")

        with pytest.raises(StoreUnavailable):
            await engine.verify(issued.token)
        with pytest.raises(StoreUnavailable):
            await engine.revoke(issued.claims.jti, issued.claims.exp)
