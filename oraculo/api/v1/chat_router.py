"""Chat API router for session and message synchronization."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, status

from oraculo.core.config import settings
from oraculo.core.exceptions import SessionBusyError
from oraculo.core.rate_limit import limiter
from oraculo.dependencies import CHAT_ROLES, get_chat_sync, require_role
from oraculo.schemas.chat_schema import (
    ChatStateResponse,
    CreateSessionRequest,
    CreateSessionResponse,
    RenameSessionRequest,
    SearchableVectorStoresRequest,
    SendMessageRequest,
)
from oraculo.schemas.response_schema import (
    GATEWAY_ERRORS,
    ApiResponse,
    success_response,
)
from oraculo.services.chat_sync import ChatSync

router = APIRouter(
    prefix="/api/v1/chat",
    tags=["chat"],
    dependencies=[Depends(require_role(*CHAT_ROLES))],
    responses=GATEWAY_ERRORS,
)

ChatSyncDep = Annotated[ChatSync, Depends(get_chat_sync)]


@router.get("/state", response_model=ApiResponse[ChatStateResponse])
async def get_state(chat: ChatSyncDep) -> dict:
    """Current chat state of the authenticated user."""
    return success_response(chat.snapshot())


@router.post(
    "/sessions",
    response_model=ApiResponse[CreateSessionResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_session(body: CreateSessionRequest, chat: ChatSyncDep) -> dict:
    """Start a new, unsaved conversation (or reuse the empty current one)."""
    session_id = await chat.create_new_session(body.session_id)
    if session_id is None:
        raise SessionBusyError()
    return success_response(CreateSessionResponse(session_id=session_id), status=201)


@router.post(
    "/sessions/{session_id}/select",
    response_model=ApiResponse[ChatStateResponse],
)
async def select_session(session_id: str, chat: ChatSyncDep) -> dict:
    """Switch to another conversation."""
    await chat.change_session(session_id)
    return success_response(chat.snapshot())


@router.patch("/sessions/{session_id}/title", response_model=ApiResponse[None])
async def rename_session(
    session_id: str,
    body: RenameSessionRequest,
    chat: ChatSyncDep,
) -> dict:
    """Rename a conversation."""
    await chat.rename_session(session_id, body.title)
    return success_response(None, message="Title updated")


@router.delete("/sessions/{session_id}", response_model=ApiResponse[ChatStateResponse])
async def delete_session(session_id: str, chat: ChatSyncDep) -> dict:
    """Soft-delete a conversation."""
    await chat.delete_session(session_id)
    return success_response(chat.snapshot(), message="Session deleted")


@router.post(
    "/messages",
    response_model=ApiResponse[ChatStateResponse],
    status_code=status.HTTP_202_ACCEPTED,
)
@limiter.limit(settings.chat.send_rate_limit)
async def send_message(
    request: Request,
    body: SendMessageRequest,
    chat: ChatSyncDep,
) -> dict:
    """Send a human message; the reply shows up through polling."""
    await chat.send_message(body.content)
    return success_response(chat.snapshot(), status=202, message="Accepted")


@router.post("/processing/reset", response_model=ApiResponse[ChatStateResponse])
async def reset_processing(chat: ChatSyncDep) -> dict:
    """Clear a stuck processing indicator."""
    chat.reset_processing_state()
    return success_response(chat.snapshot())


@router.post("/activity", response_model=ApiResponse[None])
async def record_activity(chat: ChatSyncDep) -> dict:
    """Record user activity on the chat."""
    chat.update_last_message_timestamp()
    return success_response(None)


@router.put("/vector-stores", response_model=ApiResponse[ChatStateResponse])
async def set_vector_stores(
    body: SearchableVectorStoresRequest,
    chat: ChatSyncDep,
) -> dict:
    """Choose which knowledge bases new messages search."""
    chat.set_searchable_vector_stores(body.vector_store_ids)
    return success_response(chat.snapshot())
