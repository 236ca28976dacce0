"""Pytest configuration and fixtures."""

import os

os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-key-for-testing-only")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("GENERATION_WEBHOOK_URL", "http://workflow.test/webhook/chat")
os.environ.setdefault("APP_ENV", "development")

from collections.abc import AsyncGenerator  # noqa: E402

import fakeredis.aioredis  # noqa: E402
import httpx  # noqa: E402
import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from oraculo.core.database import Base  # noqa: E402
from oraculo.core.rate_limit import limiter  # noqa: E402
from oraculo.core.settings import ChatConfig  # noqa: E402
from oraculo.models.chat_history import ChatHistory  # noqa: F401, E402
from oraculo.models.user_chat_session import UserChatSession  # noqa: F401, E402
from oraculo.models.vector_store import VectorStore  # noqa: F401, E402
from oraculo.services.chat_registry import ChatSyncRegistry  # noqa: E402
from oraculo.services.chat_store import ChatStore  # noqa: E402
from oraculo.services.generation_client import GenerationClient  # noqa: E402
from oraculo.services.token_service import TokenService  # noqa: E402
from tests.support import (  # noqa: E402
    WebhookRecorder,
    make_auth_headers,
    make_webhook_config,
    override_get_async_session,
    test_engine,
    test_session_factory,
)


@pytest.fixture(autouse=True)
async def setup_db() -> AsyncGenerator[None, None]:
    """Create all tables before each test, drop after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


# --- Test Redis (fakeredis) ---


@pytest.fixture
def fake_redis() -> fakeredis.aioredis.FakeRedis:
    """Create a fresh fake Redis client."""
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


@pytest.fixture(autouse=True)
def patch_redis(
    fake_redis: fakeredis.aioredis.FakeRedis, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Patch the global redis_client for middleware and get_redis()."""
    monkeypatch.setattr("oraculo.core.redis.redis_client", fake_redis)


@pytest.fixture(autouse=True)
def reset_rate_limits() -> None:
    """Start every test with empty rate limit counters."""
    limiter.reset()


@pytest.fixture
def token_service(fake_redis: fakeredis.aioredis.FakeRedis) -> TokenService:
    """Create a TokenService backed by fake Redis."""
    return TokenService(fake_redis)


@pytest.fixture
def webhook() -> WebhookRecorder:
    return WebhookRecorder()


# --- App override & client fixtures ---


@pytest.fixture
async def chat_registry(
    webhook: WebhookRecorder, monkeypatch: pytest.MonkeyPatch
) -> AsyncGenerator[ChatSyncRegistry, None]:
    """Registry on the test DB with timers too slow to fire during a test."""
    config = ChatConfig(
        poll_interval=60.0,
        session_retry_delay=0.0,
        reconcile_delay=60.0,
        safety_check_delay=60.0,
        safety_reset_delay=60.0,
        stuck_processing_timeout=60.0,
    )
    registry = ChatSyncRegistry(
        ChatStore(test_session_factory),
        GenerationClient(make_webhook_config(), transport=httpx.MockTransport(webhook)),
        config,
    )
    monkeypatch.setattr("oraculo.services.chat_registry.chat_registry", registry)
    yield registry
    await registry.close()


def _get_app():  # type: ignore[no-untyped-def]
    """Import app lazily and apply overrides."""
    from oraculo.core.database import get_async_session as original_dep
    from oraculo.main import app

    app.dependency_overrides[original_dep] = override_get_async_session
    return app


@pytest.fixture
async def async_client(
    chat_registry: ChatSyncRegistry,
) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client without credentials."""
    application = _get_app()
    transport = ASGITransport(app=application)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def authed_client(
    chat_registry: ChatSyncRegistry,
) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client with auth headers."""
    application = _get_app()
    transport = ASGITransport(app=application)
    async with AsyncClient(
        transport=transport, base_url="http://test", headers=make_auth_headers()
    ) as ac:
        yield ac


# --- DB session for tests ---


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a raw async session for repository tests."""
    async with test_session_factory() as session:
        yield session
