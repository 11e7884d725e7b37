"""Shared test fixtures for the token service."""

import json
import os

from tests.helpers.keys import session_key_files
from tests.helpers.proofs import ADMIN_ADDRESS, ADMIN_KEY, make_proof

# Point settings at generated keys before any app import creates Settings().
_KEYS = session_key_files()
os.environ.setdefault("PRIVATE_KEY_PATH", str(_KEYS.private_path))
os.environ.setdefault("PUBLIC_KEY_PATH", str(_KEYS.public_path))
os.environ.setdefault("TOKEN_EXPIRY", "3600")
os.environ.setdefault("ISSUE_RATE_LIMIT", "1000/minute")
os.environ.setdefault("LOG_FORMAT", "console")
os.environ.setdefault("ADMIN_SUBJECTS", json.dumps([ADMIN_ADDRESS]))

from collections.abc import AsyncGenerator  # noqa: E402

import fakeredis.aioredis  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from app.auth.keys import KeyPair, load_key_pair  # noqa: E402
from app.auth.token_engine import TokenEngine  # noqa: E402
from app.auth.token_revocation import RedisRevocationStore  # noqa: E402
from app.config import get_settings  # noqa: E402
from app.main import app  # noqa: E402
from app.rate_limit import limiter  # noqa: E402
from tests.helpers.stores import FakeClock, InMemoryRevocationStore  # noqa: E402

# ---------------------------------------------------------------------------
# Fake Redis (drop-in async replacement)
# ---------------------------------------------------------------------------


def _make_fake_redis():
    """Create a fakeredis instance that behaves like redis.asyncio.Redis."""
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


# ---------------------------------------------------------------------------
# Key material and engines
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def key_pair() -> KeyPair:
    """The session's RSA key pair, loaded through the real loader."""
    return load_key_pair(_KEYS.private_path, _KEYS.public_path)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def memory_store(clock) -> InMemoryRevocationStore:
    return InMemoryRevocationStore(clock)


@pytest.fixture()
def engine(key_pair, memory_store, clock) -> TokenEngine:
    """Engine on an in-memory deny-list with a controllable clock."""
    return TokenEngine(key_pair, memory_store, expiry_seconds=3600, clock=clock)


# ---------------------------------------------------------------------------
# Redis fixture
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture()
async def redis_client():
    """Provide a fake Redis client."""
    client = _make_fake_redis()
    yield client
    await client.aclose()


# ---------------------------------------------------------------------------
# HTTP client fixture (FastAPI app with fake Redis)
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture()
async def client(key_pair) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the FastAPI app.

    Redis is faked and the engine uses the real clock, so tests run
    without devstack.
    """
    fake_redis = _make_fake_redis()

    app.state.redis = fake_redis
    app.state.token_engine = TokenEngine.from_settings(
        get_settings(), key_pair, RedisRevocationStore(fake_redis)
    )
    limiter.reset()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await fake_redis.aclose()


# ---------------------------------------------------------------------------
# Auth helpers
# ---------------------------------------------------------------------------


def auth_headers(token: str) -> dict[str, str]:
    """Return an Authorization header dict for *token*."""
    return {"Authorization": f"Bearer {token}"}


async def issue_via_api(client, private_key: str | None = None) -> dict:
    """Issue a token through the API with a fresh proof for *private_key*."""
    proof = make_proof(private_key) if private_key else make_proof()
    resp = await client.post("/api/v1/tokens", json=proof)
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest_asyncio.fixture()
async def issued_token(client) -> str:
    """A token issued through the API for the regular test user."""
    return (await issue_via_api(client))["access_token"]


@pytest_asyncio.fixture()
async def admin_token(client) -> str:
    """A token issued through the API for the configured admin."""
    return (await issue_via_api(client, ADMIN_KEY))["access_token"]


@pytest_asyncio.fixture()
async def authed_client(client, issued_token) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client pre-authenticated with a freshly issued token."""
    client.headers.update(auth_headers(issued_token))
    yield client
    client.headers.pop("Authorization", None)


@pytest_asyncio.fixture()
async def admin_client(client, admin_token) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client pre-authenticated as the admin."""
    client.headers.update(auth_headers(admin_token))
    yield client
    client.headers.pop("Authorization", None)
