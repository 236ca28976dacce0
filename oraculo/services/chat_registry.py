"""Per-user ChatSync instances and their lifecycle."""

import asyncio
import time

import structlog

from oraculo.core.settings import ChatConfig
from oraculo.services.chat_store import ChatStore
from oraculo.services.chat_sync import ChatSync
from oraculo.services.generation_client import GenerationClient

logger = structlog.get_logger()


class ChatSyncRegistry:
    """Hands out one initialized ChatSync per user id.

    A user's ChatSync lives while the user keeps making requests; once no
    request has reached it for ``idle_timeout`` seconds the sweeper closes
    it, which stops its poller.
    """

    def __init__(
        self,
        store: ChatStore,
        generation: GenerationClient,
        config: ChatConfig,
    ) -> None:
        self._store = store
        self._generation = generation
        self._config = config
        self._syncs: dict[str, ChatSync] = {}
        self._last_seen: dict[str, float] = {}
        self._lock = asyncio.Lock()
        self._sweeper: asyncio.Task[None] | None = None

    def __len__(self) -> int:
        return len(self._syncs)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._syncs

    def start(self) -> None:
        """Start the background sweep of idle syncs."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep(), name="chat-idle-sweep")

    async def get(self, user_id: str) -> ChatSync:
        """Return the user's ChatSync, creating and initializing it once."""
        self._last_seen[user_id] = time.monotonic()
        sync = self._syncs.get(user_id)
        if sync is not None:
            return sync
        async with self._lock:
            sync = self._syncs.get(user_id)
            if sync is None:
                sync = ChatSync(self._store, self._generation, user_id, self._config)
                await sync.initialize()
                self._syncs[user_id] = sync
                self._last_seen[user_id] = time.monotonic()
                logger.info("ChatSync created", user_id=user_id)
        return sync

    async def discard(self, user_id: str) -> None:
        """Stop and forget a user's ChatSync, if any."""
        self._last_seen.pop(user_id, None)
        sync = self._syncs.pop(user_id, None)
        if sync is not None:
            await sync.close()
            logger.info("ChatSync discarded", user_id=user_id)

    async def evict_idle(self, now: float | None = None) -> int:
        """Close every ChatSync not requested within the idle timeout.

        Returns:
            Number of syncs closed.
        """
        if now is None:
            now = time.monotonic()
        cutoff = now - self._config.idle_timeout
        async with self._lock:
            idle = [
                user_id
                for user_id in self._syncs
                if self._last_seen.get(user_id, 0.0) <= cutoff
            ]
            evicted = [(user_id, self._syncs.pop(user_id)) for user_id in idle]
            for user_id in idle:
                self._last_seen.pop(user_id, None)
        for user_id, sync in evicted:
            await sync.close()
            logger.info("Idle ChatSync closed", user_id=user_id)
        return len(evicted)

    async def close(self) -> None:
        """Stop the sweeper and every ChatSync."""
        sweeper, self._sweeper = self._sweeper, None
        if sweeper is not None:
            sweeper.cancel()
            await asyncio.wait({sweeper})
        syncs, self._syncs = list(self._syncs.values()), {}
        self._last_seen.clear()
        for sync in syncs:
            await sync.close()
        logger.info("ChatSync registry closed", closed=len(syncs))

    async def _sweep(self) -> None:
        while True:
            await asyncio.sleep(self._config.idle_sweep_interval)
            try:
                await self.evict_idle()
            except Exception:
                logger.exception("Idle ChatSync sweep failed")


chat_registry: ChatSyncRegistry | None = None


def init_chat_registry(
    store: ChatStore,
    generation: GenerationClient,
    config: ChatConfig,
) -> ChatSyncRegistry:
    """Create the process-wide registry and start its idle sweep."""
    global chat_registry  # noqa: PLW0603
    chat_registry = ChatSyncRegistry(store, generation, config)
    chat_registry.start()
    return chat_registry


async def close_chat_registry() -> None:
    """Close the process-wide registry."""
    global chat_registry  # noqa: PLW0603
    if chat_registry is not None:
        await chat_registry.close()
        chat_registry = None


def get_chat_registry() -> ChatSyncRegistry:
    """Get the active registry."""
    if chat_registry is None:
        raise RuntimeError("Chat registry not initialized")
    return chat_registry
