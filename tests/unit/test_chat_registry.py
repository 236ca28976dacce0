"""Tests for ChatSyncRegistry."""

import asyncio
import time

import pytest

from oraculo.core.settings import ChatConfig
from oraculo.services import chat_registry as registry_module
from oraculo.services.chat_registry import (
    ChatSyncRegistry,
    close_chat_registry,
    get_chat_registry,
    init_chat_registry,
)
from tests.support import seed_history


class TestRegistry:
    async def test_one_sync_per_user(self, chat_registry: ChatSyncRegistry) -> None:
        first, second = await asyncio.gather(
            chat_registry.get("user-1"), chat_registry.get("user-1")
        )
        other = await chat_registry.get("user-2")

        assert first is second
        assert other is not first
        assert len(chat_registry) == 2

    async def test_discard_closes_sync(self, chat_registry: ChatSyncRegistry) -> None:
        await seed_history("s", ("human", "oi"))
        sync = await chat_registry.get("user-1")
        await sync.change_session("s")
        assert sync.poller is not None

        await chat_registry.discard("user-1")

        assert "user-1" not in chat_registry
        assert sync.poller is None
        await chat_registry.discard("user-1")

    async def test_close_all(self, chat_registry: ChatSyncRegistry) -> None:
        await chat_registry.get("user-1")
        await chat_registry.get("user-2")
        await chat_registry.close()
        assert len(chat_registry) == 0


class TestGlobalRegistry:
    async def test_lifecycle(
        self, chat_registry: ChatSyncRegistry, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(registry_module, "chat_registry", None)
        with pytest.raises(RuntimeError):
            get_chat_registry()

        created = init_chat_registry(
            chat_registry._store, chat_registry._generation, chat_registry._config
        )
        assert get_chat_registry() is created

        await close_chat_registry()
        with pytest.raises(RuntimeError):
            get_chat_registry()


class TestIdleEviction:
    async def test_idle_sync_is_closed(self, chat_registry: ChatSyncRegistry) -> None:
        await seed_history("s", ("human", "oi"))
        sync = await chat_registry.get("user-1")
        await sync.change_session("s")
        poller = sync.poller
        assert poller is not None

        later = time.monotonic() + chat_registry._config.idle_timeout + 1
        evicted = await chat_registry.evict_idle(now=later)

        assert evicted == 1
        assert "user-1" not in chat_registry
        assert poller.cancelled
        assert sync.poller is None

    async def test_recent_sync_is_kept(self, chat_registry: ChatSyncRegistry) -> None:
        await chat_registry.get("user-1")
        assert await chat_registry.evict_idle() == 0
        assert "user-1" in chat_registry

    async def test_request_refreshes_activity(
        self, chat_registry: ChatSyncRegistry
    ) -> None:
        first = await chat_registry.get("user-1")
        timeout = chat_registry._config.idle_timeout
        chat_registry._last_seen["user-1"] -= timeout + 1

        again = await chat_registry.get("user-1")

        assert again is first
        assert await chat_registry.evict_idle() == 0

    async def test_sweeper_evicts_in_background(
        self, chat_registry: ChatSyncRegistry
    ) -> None:
        config = ChatConfig(
            poll_interval=60.0,
            session_retry_delay=0.0,
            idle_timeout=0.05,
            idle_sweep_interval=0.02,
        )
        registry = ChatSyncRegistry(
            chat_registry._store, chat_registry._generation, config
        )
        registry.start()
        try:
            await registry.get("user-1")
            for _ in range(50):
                if "user-1" not in registry:
                    break
                await asyncio.sleep(0.02)
            assert "user-1" not in registry
        finally:
            await registry.close()
