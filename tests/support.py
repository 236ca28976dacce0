"""Shared test database, token and webhook helpers."""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
import jwt
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from oraculo.core.config import settings
from oraculo.core.settings import WebhookConfig
from oraculo.models.chat_history import ChatHistory

# --- Test DB (SQLite in-memory) ---

test_engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
test_session_factory = async_sessionmaker(
    test_engine, class_=AsyncSession, expire_on_commit=False
)


async def override_get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a test database session."""
    async with test_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def seed_history(session_id: str, *messages: tuple[str, str]) -> None:
    """Insert history rows as the generation workflow would."""
    async with test_session_factory() as session:
        for kind, content in messages:
            session.add(
                ChatHistory(
                    session_id=session_id,
                    message={"type": kind, "content": content},
                )
            )
        await session.commit()


# --- Token helpers ---


def make_token(
    user_id: str = "user-1",
    email: str = "test@test.com",
    role: str = "authenticated",
    session_id: str = "auth-session-1",
    expires_in: timedelta = timedelta(minutes=30),
    **extra: Any,
) -> str:
    """Sign an access token shaped like the ones Supabase issues."""
    payload: dict[str, Any] = {
        "sub": user_id,
        "email": email,
        "role": role,
        "aud": settings.auth.audience,
        "session_id": session_id,
        "exp": datetime.now(UTC) + expires_in,
        **extra,
    }
    return jwt.encode(
        payload,
        settings.auth.jwt_secret.get_secret_value(),
        algorithm=settings.auth.algorithm,
    )


def make_auth_headers(**claims: Any) -> dict[str, str]:
    """Generate Authorization headers with a valid access token."""
    return {"Authorization": f"Bearer {make_token(**claims)}"}


# --- Webhook stub ---


class WebhookRecorder:
    """Records webhook calls and answers with a configurable status."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.status_code = 200

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json={"ok": True})


def make_webhook_config(url: str = "http://workflow.test/webhook/chat") -> WebhookConfig:
    return WebhookConfig(url=url, token=SecretStr("hook-token"), timeout=5.0)
