"""Session-per-call access to the durable chat store."""

from typing import Any

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from oraculo.core.exceptions import PersistenceError
from oraculo.models.user_chat_session import UserChatSession
from oraculo.repositories.chat_repo import ChatRepository
from oraculo.repositories.vector_store_repo import VectorStoreRepository

logger = structlog.get_logger()


class ChatStore:
    """Durable store used by long-lived chat state.

    Every call opens its own database session, so polling tasks and request
    handlers never share one. SQLAlchemy errors surface as PersistenceError.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def fetch_history(self, session_id: str) -> list[Any]:
        """Raw message payloads for a session, in storage order."""
        try:
            async with self._session_factory() as session:
                return await ChatRepository(session).find_history_payloads(session_id)
        except SQLAlchemyError as exc:
            raise PersistenceError("Falha ao carregar mensagens") from exc

    async def count_human_messages(self, session_id: str) -> int:
        """Number of stored human messages for a session."""
        try:
            async with self._session_factory() as session:
                return await ChatRepository(session).count_human_messages(session_id)
        except SQLAlchemyError as exc:
            raise PersistenceError("Falha ao verificar limite de mensagens") from exc

    async def ensure_session(self, session_id: str, user_id: str, title: str) -> bool:
        """Create the session row unless it already exists.

        Returns:
            True if a row was inserted.
        """
        try:
            async with self._session_factory() as session:
                repo = ChatRepository(session)
                if await repo.session_exists(session_id):
                    return False
                await repo.create_session(session_id, user_id, title)
                await session.commit()
                return True
        except IntegrityError:
            # A concurrent insert won the race; the row exists either way.
            logger.info("Session row already created", session_id=session_id)
            return False
        except SQLAlchemyError as exc:
            raise PersistenceError("Falha ao criar sessão") from exc

    async def touch_session(self, session_id: str, user_id: str) -> None:
        """Bump a session's updated_at."""
        try:
            async with self._session_factory() as session:
                await ChatRepository(session).touch_session(session_id, user_id)
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError("Falha ao atualizar sessão") from exc

    async def rename_session(self, session_id: str, user_id: str, title: str) -> bool:
        """Update a session title. Returns False if no row matched."""
        try:
            async with self._session_factory() as session:
                updated = await ChatRepository(session).update_session_title(
                    session_id, user_id, title
                )
                await session.commit()
                return updated > 0
        except SQLAlchemyError as exc:
            raise PersistenceError("Falha ao renomear sessão. Tente novamente.") from exc

    async def soft_delete_session(self, session_id: str, user_id: str) -> bool:
        """Flag a session as deleted. Returns False if no row matched."""
        try:
            async with self._session_factory() as session:
                deleted = await ChatRepository(session).soft_delete_session(
                    session_id, user_id
                )
                await session.commit()
                return deleted > 0
        except SQLAlchemyError as exc:
            raise PersistenceError("Falha ao excluir sessão. Tente novamente.") from exc

    async def list_active_sessions(self, user_id: str) -> list[UserChatSession]:
        """Non-deleted sessions of a user, most recent first."""
        try:
            async with self._session_factory() as session:
                return await ChatRepository(session).find_active_sessions(user_id)
        except SQLAlchemyError as exc:
            raise PersistenceError("Falha ao carregar conversas") from exc

    async def get_session_title(self, session_id: str, user_id: str) -> str | None:
        """Durable title of a session, or None if it has no row."""
        try:
            async with self._session_factory() as session:
                row = await ChatRepository(session).find_session(session_id, user_id)
                return row.title if row is not None else None
        except SQLAlchemyError as exc:
            raise PersistenceError("Falha ao carregar título da sessão") from exc

    async def searchable_vector_store_ids(self) -> list[str]:
        """Ids of the vector stores the generation workflow should search."""
        try:
            async with self._session_factory() as session:
                stores = await VectorStoreRepository(session).find_searchable()
                return [store.vector_store_id for store in stores]
        except SQLAlchemyError as exc:
            raise PersistenceError("Falha ao carregar bases de conhecimento") from exc
