"""Redis-backed JWT deny-list.

Individual tokens are revoked before their natural expiry by storing the
token's ``jti`` (JWT ID) claim in Redis with a TTL matching the token's
remaining lifetime.  Entries are never updated; they disappear when the
TTL runs out or on an explicit ``delete``.

The token engine only depends on the :class:`RevocationStore` protocol,
so tests can swap in any object with the same three coroutines::

    store = RedisRevocationStore(redis)
    await store.set(jti, "1700000000", ttl_seconds=1800)
    assert await store.get(jti) == "1700000000"
"""

from typing import Protocol

from redis.asyncio import Redis

_DENY_PREFIX = "token:deny:"


class RevocationStore(Protocol):
    """Minimal key-value capability with per-entry TTL."""

    async def get(self, token_id: str) -> str | None: ...

    async def set(self, token_id: str, value: str, ttl_seconds: int) -> bool:
        """Create the entry unless it already exists. Return ``True`` if created."""
        ...

    async def delete(self, token_id: str) -> bool: ...


class RedisRevocationStore:
    """:class:`RevocationStore` on top of ``redis.asyncio``.

    Redis errors propagate unchanged; the engine translates them.
    """

    def __init__(self, redis: Redis, prefix: str = _DENY_PREFIX):
        self.redis = redis
        self.prefix = prefix

    def _make_key(self, token_id: str) -> str:
        return f"{self.prefix}{token_id}"

    async def get(self, token_id: str) -> str | None:
        value = await self.redis.get(self._make_key(token_id))
        if isinstance(value, bytes):
            return value.decode()
        return value

    async def set(self, token_id: str, value: str, ttl_seconds: int) -> bool:
        # SET NX EX: atomic create-with-TTL that never touches an existing entry
        created = await self.redis.set(self._make_key(token_id), value, ex=ttl_seconds, nx=True)
        return bool(created)

    async def delete(self, token_id: str) -> bool:
        return await self.redis.delete(self._make_key(token_id)) > 0
