"""Dependency injection for FastAPI."""

import logging
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request
from redis.asyncio import Redis

from app.auth.keys import load_key_pair
from app.auth.token_engine import TokenEngine
from app.auth.token_revocation import RedisRevocationStore
from app.config import Settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Lifespan helpers: called from main.py to create & destroy shared resources
# ---------------------------------------------------------------------------


def create_redis(settings: Settings) -> Redis:
    """Create the async Redis client.

    Socket timeouts mirror the engine's store timeout so a hung connection
    surfaces as an error instead of blocking a request.
    """
    return Redis.from_url(
        str(settings.redis_url),
        decode_responses=True,
        socket_timeout=settings.store_timeout_seconds,
        socket_connect_timeout=settings.store_timeout_seconds,
    )


def create_token_engine(settings: Settings, redis: Redis) -> TokenEngine:
    """Load the key pair and wire the engine to the Redis deny-list.

    Raises:
        KeyLoadFailure: If the configured key material is unusable.
    """
    keys = load_key_pair(settings.private_key_path, settings.public_key_path)
    return TokenEngine.from_settings(settings, keys, RedisRevocationStore(redis))


# ---------------------------------------------------------------------------
# FastAPI dependencies: pull resources from app.state (set in lifespan)
# ---------------------------------------------------------------------------


async def get_redis(request: Request) -> AsyncGenerator[Redis, None]:
    """Dependency that provides the Redis client from app.state."""
    yield request.app.state.redis


def get_token_engine(request: Request) -> TokenEngine:
    """Dependency that provides the shared token engine from app.state."""
    return request.app.state.token_engine


# ---------------------------------------------------------------------------
# Type aliases for cleaner dependency injection
# ---------------------------------------------------------------------------
RedisClient = Annotated[Redis, Depends(get_redis)]
Engine = Annotated[TokenEngine, Depends(get_token_engine)]
