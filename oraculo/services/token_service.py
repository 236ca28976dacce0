"""Access token revocation backed by Redis."""

from datetime import UTC, datetime
from typing import Any

import redis.asyncio as redis

BLACKLIST_PREFIX = "token_blacklist:"


def token_identifier(payload: dict[str, Any]) -> str:
    """Return the claim that identifies a token for revocation.

    Supabase access tokens carry a ``session_id`` claim instead of ``jti``.
    """
    return str(payload.get("jti") or payload.get("session_id") or "")


class TokenService:
    """Manage the Redis-backed access token blacklist."""

    def __init__(self, redis_client: redis.Redis) -> None:  # type: ignore[type-arg]
        self._redis = redis_client

    async def blacklist_token(self, token_id: str, exp: int) -> None:
        """Add a token to the blacklist until it expires."""
        ttl = exp - int(datetime.now(UTC).timestamp())
        if token_id and ttl > 0:
            await self._redis.setex(f"{BLACKLIST_PREFIX}{token_id}", ttl, "1")

    async def is_blacklisted(self, token_id: str) -> bool:
        """Check if a token is blacklisted."""
        result = await self._redis.get(f"{BLACKLIST_PREFIX}{token_id}")
        return result is not None
