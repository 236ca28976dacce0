"""Tests for the session-per-call ChatStore."""

from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from oraculo.core.exceptions import PersistenceError
from oraculo.repositories.chat_repo import ChatRepository
from oraculo.services.chat_store import ChatStore
from tests.support import seed_history, test_session_factory


@pytest.fixture
def store() -> ChatStore:
    return ChatStore(test_session_factory)


class TestReads:
    async def test_fetch_history(self, store: ChatStore) -> None:
        await seed_history("s", ("human", "oi"), ("ai", "olá"))
        rows = await store.fetch_history("s")
        assert rows == [
            {"type": "human", "content": "oi"},
            {"type": "ai", "content": "olá"},
        ]

    async def test_count_human_messages(self, store: ChatStore) -> None:
        await seed_history("s", ("human", "1"), ("ai", "2"), ("human", "3"))
        assert await store.count_human_messages("s") == 2

    async def test_read_failure_becomes_persistence_error(self, store: ChatStore) -> None:
        error = OperationalError("SELECT", {}, Exception("connection lost"))
        with patch.object(ChatRepository, "find_history_payloads", side_effect=error):
            with pytest.raises(PersistenceError) as exc_info:
                await store.fetch_history("s")
        assert exc_info.value.message == "Falha ao carregar mensagens"


class TestSessions:
    async def test_ensure_session_is_idempotent(self, store: ChatStore) -> None:
        assert await store.ensure_session("s", "user-1", "Nova Conversa") is True
        assert await store.ensure_session("s", "user-1", "Nova Conversa") is False

        rows = await store.list_active_sessions("user-1")
        assert [row.session_id for row in rows] == ["s"]

    async def test_rename_and_title(self, store: ChatStore) -> None:
        await store.ensure_session("s", "user-1", "Nova Conversa")
        assert await store.rename_session("s", "user-1", "Renomeada") is True
        assert await store.get_session_title("s", "user-1") == "Renomeada"
        assert await store.rename_session("missing", "user-1", "x") is False

    async def test_soft_delete_hides_session(self, store: ChatStore) -> None:
        await store.ensure_session("s", "user-1", "Nova Conversa")
        assert await store.soft_delete_session("s", "user-1") is True
        assert await store.list_active_sessions("user-1") == []
        assert await store.soft_delete_session("s", "user-1") is False

    async def test_touch_session(self, store: ChatStore) -> None:
        await store.ensure_session("s", "user-1", "Nova Conversa")
        await store.touch_session("s", "user-1")

    async def test_unknown_title_is_none(self, store: ChatStore) -> None:
        assert await store.get_session_title("missing", "user-1") is None

    async def test_searchable_ids_empty(self, store: ChatStore) -> None:
        assert await store.searchable_vector_store_ids() == []
