"""ASGI authentication middleware."""

import json
from typing import Any

import jwt
import structlog
from starlette.types import ASGIApp, Receive, Scope, Send

from oraculo.core import redis as redis_state
from oraculo.core.config import settings
from oraculo.services.token_service import TokenService, token_identifier

logger = structlog.get_logger()

PUBLIC_PATHS: set[str] = {
    "",
    "/",
    "/health",
    "/docs",
    "/openapi.json",
    "/redoc",
}


def resolve_role(payload: dict[str, Any]) -> str:
    """Pick the application role, preferring the one set in app_metadata."""
    app_metadata = payload.get("app_metadata") or {}
    role = app_metadata.get("role") if isinstance(app_metadata, dict) else None
    return str(role or payload.get("role") or "authenticated")


class AuthMiddleware:
    """Pure ASGI middleware validating Supabase access tokens."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        method = scope.get("method", "")
        if method == "OPTIONS":
            await self.app(scope, receive, send)
            return

        path = scope["path"]
        normalized = path.rstrip("/") or "/"
        if normalized in PUBLIC_PATHS or path.startswith(("/docs", "/redoc")):
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        auth_header = headers.get(b"authorization", b"").decode()

        if not auth_header.startswith("Bearer "):
            await self._send_error(
                send, 401, "MISSING_TOKEN", "Authorization header required"
            )
            return

        token = auth_header[7:]
        secret = settings.auth.jwt_secret.get_secret_value()

        try:
            payload: dict[str, Any] = jwt.decode(
                token,
                secret,
                algorithms=[settings.auth.algorithm],
                audience=settings.auth.audience,
            )
        except jwt.ExpiredSignatureError:
            await self._send_error(send, 401, "TOKEN_EXPIRED", "Token has expired")
            return
        except jwt.InvalidTokenError:
            await self._send_error(send, 401, "INVALID_TOKEN", "Invalid token")
            return

        if not payload.get("sub"):
            await self._send_error(send, 401, "INVALID_TOKEN", "Token has no subject")
            return

        token_id = token_identifier(payload)
        client = redis_state.redis_client
        if client is not None and token_id:
            if await TokenService(client).is_blacklisted(token_id):
                await self._send_error(
                    send, 401, "TOKEN_BLACKLISTED", "Token has been revoked"
                )
                return

        scope.setdefault("state", {})
        scope["state"]["user_id"] = str(payload["sub"])
        scope["state"]["email"] = payload.get("email", "")
        scope["state"]["role"] = resolve_role(payload)
        scope["state"]["token_id"] = token_id
        scope["state"]["exp"] = int(payload.get("exp", 0))

        await self.app(scope, receive, send)

    @staticmethod
    async def _send_error(send: Send, status: int, code: str, message: str) -> None:
        """Send a JSON error response directly."""
        logger.info("Rejected request", status=status, code=code)
        body = json.dumps({"status": status, "message": message, "code": code}).encode()

        await send(
            {
                "type": "http.response.start",
                "status": status,
                "headers": [
                    [b"content-type", b"application/json"],
                    [b"content-length", str(len(body)).encode()],
                ],
            }
        )
        await send({"type": "http.response.body", "body": body})
