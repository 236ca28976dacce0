"""Chat repository for history and session metadata database operations."""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from oraculo.models.chat_history import ChatHistory
from oraculo.models.user_chat_session import UserChatSession


def session_id_variants(session_id: str) -> list[str]:
    """Stored forms of a session id.

    Some legacy history rows were written with a leading space.
    """
    return [session_id, f" {session_id}"]


class ChatRepository:
    """Encapsulates chat history and session metadata queries."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # --- History (written by the generation workflow) ---

    async def find_history_payloads(self, session_id: str) -> list[Any]:
        """Retrieve the raw message payloads for a session in insertion order."""
        result = await self._session.execute(
            select(ChatHistory.message)
            .where(ChatHistory.session_id.in_(session_id_variants(session_id)))
            .order_by(ChatHistory.id.asc())
        )
        return list(result.scalars().all())

    async def count_human_messages(self, session_id: str) -> int:
        """Count history rows whose payload is a human message."""
        payloads = await self.find_history_payloads(session_id)
        return sum(
            1
            for payload in payloads
            if isinstance(payload, dict) and payload.get("type") == "human"
        )

    # --- Session metadata ---

    async def find_session(
        self, session_id: str, user_id: str
    ) -> UserChatSession | None:
        """Find a user's session row, deleted or not."""
        result = await self._session.execute(
            select(UserChatSession).where(
                UserChatSession.session_id == session_id,
                UserChatSession.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def session_exists(self, session_id: str) -> bool:
        """Check whether any row already uses this session id."""
        result = await self._session.execute(
            select(UserChatSession.id).where(UserChatSession.session_id == session_id)
        )
        return result.first() is not None

    async def create_session(
        self, session_id: str, user_id: str, title: str
    ) -> UserChatSession:
        """Insert a session metadata row."""
        row = UserChatSession(session_id=session_id, user_id=user_id, title=title)
        self._session.add(row)
        await self._session.flush()
        await self._session.refresh(row)
        return row

    async def find_active_sessions(self, user_id: str) -> list[UserChatSession]:
        """Fetch a user's non-deleted sessions, most recently updated first."""
        result = await self._session.execute(
            select(UserChatSession)
            .where(
                UserChatSession.user_id == user_id,
                UserChatSession.is_deleted.is_(False),
            )
            .order_by(UserChatSession.updated_at.desc(), UserChatSession.id.desc())
        )
        return list(result.scalars().all())

    async def update_session_title(
        self, session_id: str, user_id: str, title: str
    ) -> int:
        """Update the title of a session. Returns the number of rows updated."""
        result = await self._session.execute(
            update(UserChatSession)
            .where(
                UserChatSession.session_id == session_id,
                UserChatSession.user_id == user_id,
            )
            .values(title=title)
        )
        return result.rowcount

    async def soft_delete_session(
        self, session_id: str, user_id: str, deleted_at: datetime | None = None
    ) -> int:
        """Flag a session as deleted. Returns the number of rows updated."""
        result = await self._session.execute(
            update(UserChatSession)
            .where(
                UserChatSession.session_id == session_id,
                UserChatSession.user_id == user_id,
                UserChatSession.is_deleted.is_(False),
            )
            .values(is_deleted=True, deleted_at=deleted_at or datetime.now(UTC))
        )
        return result.rowcount

    async def touch_session(self, session_id: str, user_id: str) -> None:
        """Bump updated_at so the session sorts first."""
        await self._session.execute(
            update(UserChatSession)
            .where(
                UserChatSession.session_id == session_id,
                UserChatSession.user_id == user_id,
            )
            .values(updated_at=datetime.now(UTC))
        )

    # --- Maintenance ---

    async def trim_session_ids(self) -> tuple[int, int, int]:
        """Strip stray whitespace from stored session ids.

        A session row whose trimmed id already belongs to another row is left
        as it is, since session ids are unique.

        Returns:
            Tuple of (history rows fixed, session rows fixed, session rows
            skipped).
        """
        history = await self._session.execute(
            update(ChatHistory)
            .where(ChatHistory.session_id != func.trim(ChatHistory.session_id))
            .values(session_id=func.trim(ChatHistory.session_id))
            .execution_options(synchronize_session=False)
        )

        result = await self._session.execute(
            select(UserChatSession)
            .where(UserChatSession.session_id != func.trim(UserChatSession.session_id))
            .order_by(UserChatSession.id)
        )
        rows = list(result.scalars().all())
        wanted = [row.session_id.strip() for row in rows]
        existing = await self._session.execute(
            select(UserChatSession.session_id).where(
                UserChatSession.session_id.in_(wanted)
            )
        )
        taken = set(existing.scalars().all())

        fixed = skipped = 0
        for row, trimmed in zip(rows, wanted, strict=True):
            if trimmed in taken:
                skipped += 1
                continue
            row.session_id = trimmed
            taken.add(trimmed)
            fixed += 1
        await self._session.flush()
        return history.rowcount, fixed, skipped
