"""Chat history database model."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from oraculo.core.database import Base


class ChatHistory(Base):
    """One message row written by the generation workflow.

    ``message`` holds ``{"type": "human" | "ai", "content": str, ...}``.
    The auto-increment ``id`` is the authoritative message order.
    """

    __tablename__ = "n8n_chat_histories"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    message: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
