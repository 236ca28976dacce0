"""Authentication response schemas."""

from pydantic import BaseModel, ConfigDict


class UserResponse(BaseModel):
    """Authenticated user as seen by the API."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    role: str


class MessageResponse(BaseModel):
    """Simple message response."""

    model_config = ConfigDict(frozen=True)

    message: str
