"""Authentication endpoints.

Tokens are issued by Supabase; this service only reports who is signed in
and revokes the current token on logout.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Request

from oraculo.dependencies import (
    CurrentUser,
    get_current_user,
    get_registry,
    get_token_service,
)
from oraculo.schemas.auth_schema import MessageResponse, UserResponse
from oraculo.schemas.response_schema import (
    GATEWAY_ERRORS,
    ApiResponse,
    success_response,
)
from oraculo.services.chat_registry import ChatSyncRegistry
from oraculo.services.token_service import TokenService

logger = structlog.get_logger()

router = APIRouter(prefix="/api/auth", tags=["auth"], responses=GATEWAY_ERRORS)

TokenServiceDep = Annotated[TokenService, Depends(get_token_service)]
RegistryDep = Annotated[ChatSyncRegistry, Depends(get_registry)]
CurrentUserDep = Annotated[CurrentUser, Depends(get_current_user)]


@router.get("/me", response_model=ApiResponse[UserResponse])
async def me(current_user: CurrentUserDep) -> dict:
    """Return the authenticated user."""
    return success_response(
        UserResponse(
            id=current_user.id,
            email=current_user.email,
            role=current_user.role,
        )
    )


@router.post("/logout", response_model=ApiResponse[MessageResponse])
async def logout(
    request: Request,
    token_service: TokenServiceDep,
    registry: RegistryDep,
    current_user: CurrentUserDep,
) -> dict:
    """Revoke the current access token and drop the user's chat state."""
    await token_service.blacklist_token(request.state.token_id, request.state.exp)
    await registry.discard(current_user.id)
    logger.info("User logged out", user_id=current_user.id)
    return success_response(MessageResponse(message="Successfully logged out"))
