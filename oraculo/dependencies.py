"""Global dependencies for the application."""

from collections.abc import Callable

from fastapi import Depends, Request
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from oraculo.core.database import get_async_session
from oraculo.core.exceptions import AuthenticationError, AuthorizationError
from oraculo.core.redis import get_redis
from oraculo.repositories.vector_store_repo import VectorStoreRepository
from oraculo.services.chat_registry import ChatSyncRegistry, get_chat_registry
from oraculo.services.chat_sync import ChatSync
from oraculo.services.token_service import TokenService

CHAT_ROLES: tuple[str, ...] = ("authenticated", "user", "admin")


# --- Auth dependencies ---


class CurrentUser(BaseModel):
    """Authenticated user extracted from request state."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    role: str


def get_token_service() -> TokenService:
    """Get TokenService backed by the active Redis client."""
    return TokenService(get_redis())


def get_current_user(request: Request) -> CurrentUser:
    """Extract the authenticated user from middleware-populated state."""
    state = getattr(request, "state", None)
    user_id = getattr(state, "user_id", None) if state else None
    if user_id is None:
        raise AuthenticationError(message="Not authenticated")
    return CurrentUser(
        id=state.user_id,
        email=state.email,
        role=state.role,
    )


def require_role(*allowed_roles: str) -> Callable[..., CurrentUser]:
    """Dependency factory that enforces role-based access control."""

    def _check(
        current_user: CurrentUser = Depends(get_current_user),
    ) -> CurrentUser:
        if current_user.role not in allowed_roles:
            raise AuthorizationError(
                message=f"Role '{current_user.role}' is not permitted"
            )
        return current_user

    return _check


# --- Chat dependencies ---


def get_registry() -> ChatSyncRegistry:
    """Get the process-wide ChatSync registry."""
    return get_chat_registry()


async def get_chat_sync(
    current_user: CurrentUser = Depends(get_current_user),
    registry: ChatSyncRegistry = Depends(get_registry),
) -> ChatSync:
    """Get the authenticated user's ChatSync."""
    return await registry.get(current_user.id)


def get_vector_store_repository(
    session: AsyncSession = Depends(get_async_session),
) -> VectorStoreRepository:
    """Get VectorStoreRepository bound to the current session."""
    return VectorStoreRepository(session)
