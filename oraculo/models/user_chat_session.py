"""User chat session metadata model."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, String, false, func
from sqlalchemy.orm import Mapped, mapped_column

from oraculo.core.database import Base


class UserChatSession(Base):
    """Durable metadata for a conversation, created on its first message."""

    __tablename__ = "user_chat_sessions"
    __table_args__ = (
        Index("ix_user_chat_sessions_user_id_updated_at", "user_id", "updated_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    title: Mapped[str] = mapped_column(
        String(255), nullable=False, default="Nova Conversa"
    )
    is_deleted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
