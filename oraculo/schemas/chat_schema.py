"""Chat request and response schemas."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

MessageType = Literal["human", "ai"]


class ChatMessage(BaseModel):
    """Individual chat message, compared by value."""

    model_config = ConfigDict(frozen=True)

    type: MessageType
    content: str


class SessionInfo(BaseModel):
    """Sidebar entry for one session."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    is_new: bool = False


class SendMessageRequest(BaseModel):
    """Send message request schema."""

    content: str = Field(..., min_length=1, max_length=4000)


class CreateSessionRequest(BaseModel):
    """Create session request; the id is generated when omitted."""

    session_id: str | None = Field(default=None, max_length=255)


class CreateSessionResponse(BaseModel):
    """Identifier of the created (or reused) empty session."""

    model_config = ConfigDict(frozen=True)

    session_id: str


class RenameSessionRequest(BaseModel):
    """Request to rename a session."""

    title: str = Field(..., min_length=1, max_length=100)


class SearchableVectorStoresRequest(BaseModel):
    """Vector stores the generation workflow should search."""

    vector_store_ids: list[str] = Field(default_factory=list)


class SearchConfigResponse(BaseModel):
    """Active and searchable vector store ids."""

    model_config = ConfigDict(frozen=True)

    searchable_ids: list[str]


class ChatStateResponse(BaseModel):
    """Snapshot of one user's chat state for the presentation layer."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    phase: str
    messages: list[ChatMessage]
    loading: bool
    error: str | None = None
    is_processing: bool
    session_limit_reached: bool
    is_new_conversation: bool
    has_empty_chat: bool
    active_sessions: list[str]
    session_infos: list[SessionInfo]
    last_message_timestamp: float
    searchable_vector_stores: list[str]
