"""Per-user chat session and message synchronization.

A ``ChatSync`` owns the in-memory view of one user's conversations. Human
messages are shown optimistically and handed to the generation webhook; the
webhook writes both the human message and the AI reply into the history
table later, so the view is kept in step by polling that table and
reconciling what comes back with the pending message.
"""

import asyncio
import time
import uuid
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field, replace
from enum import StrEnum
from functools import partial

import structlog

from oraculo.core.exceptions import (
    AppException,
    InvalidInputError,
    MessageInFlightError,
    MessageLimitReachedError,
    NoActiveSessionError,
    PersistenceError,
    SessionNotFoundError,
)
from oraculo.core.settings import ChatConfig
from oraculo.schemas.chat_schema import ChatMessage, ChatStateResponse, SessionInfo
from oraculo.services.chat_store import ChatStore
from oraculo.services.generation_client import GenerationClient
from oraculo.services.reconciliation import (
    PendingMessage,
    count_messages,
    normalize_session_id,
    parse_history,
    reconcile,
)

logger = structlog.get_logger()

SELECT_SESSION_HINT = "Selecione uma conversa existente ou crie uma nova."
TITLE_MAX_LENGTH = 30


class SyncPhase(StrEnum):
    """What the synchronizer is doing right now."""

    IDLE = "idle"
    CREATING = "creating"
    CHANGING = "changing"
    LOADING = "loading"
    POLLING = "polling"


# A create or change holds one of these until its first load has finished.
BUSY_PHASES = frozenset({SyncPhase.CREATING, SyncPhase.CHANGING, SyncPhase.LOADING})


def display_title(title: str | None, session_id: str) -> str:
    """Sidebar title, falling back to a short id and capped in length."""
    text = title or f"Conversa {session_id[:6]}"
    if len(text) > TITLE_MAX_LENGTH:
        text = text[: TITLE_MAX_LENGTH - 3] + "..."
    return text


@dataclass
class ChatState:
    """Mutable view state of one user's chat."""

    session_id: str = ""
    messages: list[ChatMessage] = field(default_factory=list)
    active_sessions: list[str] = field(default_factory=list)
    session_infos: dict[str, SessionInfo] = field(default_factory=dict)
    pending: PendingMessage | None = None
    is_processing: bool = False
    session_limit_reached: bool = False
    is_new_conversation: bool = False
    has_empty_chat: bool = False
    loading: bool = False
    error: str | None = None
    last_message_timestamp: float = 0.0
    searchable_vector_stores: list[str] = field(default_factory=list)
    durable_count: int = 0
    # Durable row count at which processing was force-cleared.
    stalled_at: int | None = None


class SessionPoller:
    """Repeating fetch-and-reconcile task bound to one session id."""

    def __init__(
        self,
        session_id: str,
        interval: float,
        tick: Callable[[str], Awaitable[object]],
    ) -> None:
        self.session_id = session_id
        self._interval = interval
        self._tick = tick
        self._cancelled = False
        self._task: asyncio.Task[None] | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def start(self) -> None:
        self._task = asyncio.create_task(self._run(), name=f"poll:{self.session_id}")

    def cancel(self) -> None:
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def stop(self) -> None:
        """Cancel and wait until the task has finished."""
        self.cancel()
        task = self._task
        if task is not None and task is not asyncio.current_task():
            await asyncio.wait({task})

    async def _run(self) -> None:
        while not self._cancelled:
            await asyncio.sleep(self._interval)
            if self._cancelled:
                return
            try:
                await self._tick(self.session_id)
            except Exception:
                logger.exception("Poll tick failed", session_id=self.session_id)


class ChatSync:
    """Keeps one user's chat view in step with the durable history."""

    def __init__(
        self,
        store: ChatStore,
        generation: GenerationClient,
        user_id: str,
        config: ChatConfig,
    ) -> None:
        self._store = store
        self._generation = generation
        self._user_id = user_id
        self._config = config
        self.state = ChatState()
        self._phase = SyncPhase.IDLE
        self._poller: SessionPoller | None = None
        self._timers: set[asyncio.Task[None]] = set()
        self._processing_guard: asyncio.Task[None] | None = None

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def phase(self) -> SyncPhase:
        return self._phase

    @property
    def poller(self) -> SessionPoller | None:
        return self._poller

    # --- Lifecycle ---

    async def initialize(self) -> None:
        """Load the user's active sessions; no session is selected yet."""
        state = self.state
        state.loading = True
        try:
            rows = await self._store.list_active_sessions(self._user_id)
        except PersistenceError:
            logger.exception("Failed to load user sessions", user_id=self._user_id)
            state.error = "Falha ao inicializar o chat"
            rows = []

        state.active_sessions = []
        state.session_infos = {}
        for row in rows:
            session_id = normalize_session_id(row.session_id)
            state.active_sessions.append(session_id)
            state.session_infos[session_id] = SessionInfo(
                id=session_id, title=display_title(row.title, session_id)
            )

        try:
            state.searchable_vector_stores = (
                await self._store.searchable_vector_store_ids()
            )
        except PersistenceError:
            logger.warning(
                "Failed to load searchable vector stores", user_id=self._user_id
            )

        state.session_id = ""
        state.messages = []
        state.is_new_conversation = False
        state.has_empty_chat = False
        state.loading = False
        self._phase = SyncPhase.IDLE
        if state.active_sessions and state.error is None:
            state.error = SELECT_SESSION_HINT

        logger.info(
            "Chat initialized",
            user_id=self._user_id,
            sessions=len(state.active_sessions),
        )

    async def close(self) -> None:
        """Stop polling and cancel every pending timer."""
        await self._stop_polling()
        timers = list(self._timers)
        for task in timers:
            task.cancel()
        if timers:
            await asyncio.wait(timers)
        self._timers.clear()
        self._processing_guard = None

    # --- Sessions ---

    async def create_new_session(self, specific_id: str | None = None) -> str | None:
        """Start an empty, unsaved session.

        Returns:
            The new session id, the id of the empty session that is already
            current, or None while another create/change is in progress.
        """
        state = self.state
        if state.has_empty_chat and state.is_new_conversation and state.session_id:
            logger.info("Reusing existing empty session", session_id=state.session_id)
            return state.session_id

        if self._phase in BUSY_PHASES:
            logger.info("Session operation in progress, ignoring create")
            return None

        self._phase = SyncPhase.CREATING
        try:
            await self._stop_polling()
            self._forget_unsaved_session()
            new_id = normalize_session_id(specific_id) or str(uuid.uuid4())
            self._reset_view(new_id)
            if new_id not in state.active_sessions:
                state.session_infos[new_id] = SessionInfo(
                    id=new_id, title=self._config.default_title, is_new=True
                )
            state.has_empty_chat = True
            state.is_new_conversation = True
            logger.info("Created in-memory session", session_id=new_id)

            self._phase = SyncPhase.LOADING
            await self._initial_load(new_id, retry=False)
        finally:
            self._release_phase()
        return new_id

    async def change_session(self, new_session_id: str) -> None:
        """Switch to another session and start polling it."""
        target = normalize_session_id(new_session_id)
        state = self.state
        if not target or target == state.session_id:
            logger.debug("Already on requested session", session_id=target)
            return

        if self._phase in BUSY_PHASES:
            logger.info("Session change already in progress, ignoring", session_id=target)
            return

        self._phase = SyncPhase.CHANGING
        try:
            await self._stop_polling()
            self._forget_unsaved_session()
            self._reset_view(target)
            state.is_new_conversation = False
            state.has_empty_chat = False
            logger.info("Changed session", user_id=self._user_id, session_id=target)

            self._phase = SyncPhase.LOADING
            await self._refresh_title(target)
            await self._initial_load(target, retry=True)
        finally:
            self._release_phase()

    async def rename_session(self, session_id: str, new_title: str) -> None:
        """Rename a session durably, then in the local cache."""
        target = normalize_session_id(session_id)
        title = new_title.strip()
        if not target or not title:
            raise InvalidInputError("Dados inválidos para renomear sessão")

        state = self.state
        info = state.session_infos.get(target)
        if info is not None and info.is_new:
            state.session_infos[target] = info.model_copy(update={"title": title})
            return

        try:
            renamed = await self._store.rename_session(target, self._user_id, title)
        except PersistenceError as exc:
            state.error = exc.message
            raise
        if not renamed:
            raise SessionNotFoundError()

        state.session_infos[target] = SessionInfo(
            id=target, title=display_title(title, target)
        )
        self.update_last_message_timestamp()
        logger.info("Session renamed", session_id=target)

    async def delete_session(self, session_id: str) -> None:
        """Soft-delete a session and move off it if it was current."""
        target = normalize_session_id(session_id)
        if not target:
            raise InvalidInputError("Dados inválidos para excluir sessão")

        state = self.state
        info = state.session_infos.get(target)
        unsaved = info is not None and info.is_new
        if not unsaved:
            try:
                deleted = await self._store.soft_delete_session(target, self._user_id)
            except PersistenceError as exc:
                state.error = exc.message
                raise
            if not deleted:
                raise SessionNotFoundError()

        state.active_sessions = [sid for sid in state.active_sessions if sid != target]
        state.session_infos.pop(target, None)
        logger.info("Session deleted", session_id=target)

        if target != state.session_id:
            return

        state.has_empty_chat = False
        state.is_new_conversation = False
        next_session = next(iter(state.active_sessions), None)
        if next_session is not None:
            await self.change_session(next_session)
        else:
            await self.create_new_session()

    # --- Messages ---

    async def send_message(self, content: str) -> None:
        """Show a human message optimistically and hand it to the webhook.

        Raises:
            NoActiveSessionError, InvalidInputError, MessageInFlightError:
                The message was not accepted.
            MessageLimitReachedError: The session is full.
            PersistenceError, GenerationError: A step failed; the optimistic
                message has been rolled back.
        """
        state = self.state
        text = content.strip()
        session_id = state.session_id
        if not session_id:
            raise NoActiveSessionError()
        if not text:
            raise InvalidInputError("A mensagem não pode estar vazia")
        if state.is_processing:
            raise MessageInFlightError()
        if state.session_limit_reached:
            limit_error = MessageLimitReachedError()
            state.error = limit_error.message
            raise limit_error

        message = ChatMessage(type="human", content=text)
        pending = PendingMessage(
            message=message,
            human_baseline=count_messages(state.messages, "human"),
        )
        state.pending = pending
        state.messages = [*state.messages, message]
        state.stalled_at = None
        self._set_processing(True)

        try:
            if state.is_new_conversation:
                await self._persist_session(session_id)

            human_count = await self._store.count_human_messages(session_id)
            logger.info(
                "Human message count",
                session_id=session_id,
                count=human_count,
                limit=self._config.max_human_messages,
            )
            if human_count >= self._config.max_human_messages:
                if state.session_id == session_id:
                    state.session_limit_reached = True
                raise MessageLimitReachedError()

            if state.pending is pending:
                pending = replace(pending, human_baseline=human_count)
                state.pending = pending
            state.error = None
            self.update_last_message_timestamp()

            await self._generation.dispatch(
                text, session_id, self._user_id, state.searchable_vector_stores
            )
        except AppException as exc:
            self._rollback_send(session_id, pending, exc.message)
            raise

        await self._touch_session(session_id)
        self._schedule(
            self._config.reconcile_delay,
            partial(self.load_messages_for_session, session_id, True),
            name=f"reconcile:{session_id}",
        )
        self._schedule(
            self._config.safety_check_delay,
            partial(self._safety_check, session_id, pending),
            name=f"safety-check:{session_id}",
        )

    async def load_messages_for_session(
        self, session_id: str, force_load: bool = False
    ) -> int | None:
        """Fetch a session's history and reconcile it with local state.

        Read failures are logged and swallowed; the next poll retries.

        Returns:
            Number of valid durable messages (0 on a failed read), or None
            when the load was skipped or its result discarded.
        """
        target = normalize_session_id(session_id)
        state = self.state
        if not target or target != state.session_id:
            return None
        if not force_load and (
            state.is_new_conversation or self._phase in BUSY_PHASES
        ):
            return None

        try:
            rows = await self._store.fetch_history(target)
        except PersistenceError:
            logger.warning(
                "History read failed, retrying on next poll",
                session_id=target,
                exc_info=True,
            )
            return 0 if target == state.session_id else None

        if target != state.session_id:
            logger.info("Session changed during load, discarding", session_id=target)
            return None

        fetched = parse_history(rows)
        state.durable_count = len(fetched)
        if state.stalled_at is not None and len(fetched) != state.stalled_at:
            state.stalled_at = None

        if not fetched and state.pending is None:
            if state.messages:
                state.messages = []
            state.is_new_conversation = True
            state.has_empty_chat = True
            state.session_limit_reached = False
            self._set_processing(False)
            return 0

        result = reconcile(
            fetched,
            state.pending,
            state.messages,
            self._config.max_human_messages,
            state.stalled_at,
        )
        if result.changed:
            state.messages = result.messages
        if state.pending is not None and result.pending is None:
            logger.info("Reply confirmed", session_id=target)
        state.pending = result.pending
        self._set_processing(result.is_processing)
        state.session_limit_reached = result.limit_reached
        if fetched:
            state.is_new_conversation = False
            state.has_empty_chat = False
        return len(fetched)

    def reset_processing_state(self) -> None:
        """Clear pending/processing without touching durable data."""
        state = self.state
        logger.info("Resetting processing state", session_id=state.session_id)
        state.pending = None
        state.stalled_at = state.durable_count
        self._set_processing(False)

    def update_last_message_timestamp(self) -> None:
        self.state.last_message_timestamp = time.time()

    def set_searchable_vector_stores(self, vector_store_ids: Sequence[str]) -> None:
        """Choose which vector stores the webhook is told to search."""
        cleaned: list[str] = []
        for raw in vector_store_ids:
            value = raw.strip()
            if value and value not in cleaned:
                cleaned.append(value)
        self.state.searchable_vector_stores = cleaned

    def snapshot(self) -> ChatStateResponse:
        """Current state for the presentation layer."""
        state = self.state
        return ChatStateResponse(
            session_id=state.session_id,
            phase=self._phase.value,
            messages=list(state.messages),
            loading=state.loading,
            error=state.error,
            is_processing=state.is_processing,
            session_limit_reached=state.session_limit_reached,
            is_new_conversation=state.is_new_conversation,
            has_empty_chat=state.has_empty_chat,
            active_sessions=list(state.active_sessions),
            session_infos=list(state.session_infos.values()),
            last_message_timestamp=state.last_message_timestamp,
            searchable_vector_stores=list(state.searchable_vector_stores),
        )

    # --- Internals ---

    def _reset_view(self, session_id: str) -> None:
        state = self.state
        state.session_id = session_id
        state.messages = []
        state.pending = None
        state.stalled_at = None
        state.durable_count = 0
        state.session_limit_reached = False
        state.error = None
        state.loading = True
        self._set_processing(False)

    def _forget_unsaved_session(self) -> None:
        """Drop the sidebar entry of an empty session that is being left."""
        state = self.state
        session_id = state.session_id
        if not session_id or session_id in state.active_sessions:
            return
        info = state.session_infos.get(session_id)
        if info is not None and info.is_new:
            del state.session_infos[session_id]

    async def _initial_load(self, session_id: str, retry: bool) -> None:
        """Forced first read, one delayed retry if empty, then poll."""
        count = await self.load_messages_for_session(session_id, force_load=True)
        if retry and count == 0 and self.state.session_id == session_id:
            logger.info("Empty first read, retrying", session_id=session_id)
            await asyncio.sleep(self._config.session_retry_delay)
            await self.load_messages_for_session(session_id, force_load=True)

        if self.state.session_id != session_id:
            return
        self.state.loading = False
        self._start_polling(session_id)

    async def _refresh_title(self, session_id: str) -> None:
        try:
            title = await self._store.get_session_title(session_id, self._user_id)
        except PersistenceError:
            logger.warning("Failed to load session title", session_id=session_id)
            return
        if title is not None and self.state.session_id == session_id:
            self.state.session_infos[session_id] = SessionInfo(
                id=session_id, title=display_title(title, session_id)
            )

    async def _persist_session(self, session_id: str) -> None:
        """Create the durable row for a session on its first message."""
        state = self.state
        info = state.session_infos.get(session_id)
        title = info.title if info is not None else self._config.default_title
        created = await self._store.ensure_session(session_id, self._user_id, title)
        logger.info("Session persisted", session_id=session_id, created=created)

        state.session_infos[session_id] = SessionInfo(
            id=session_id, title=display_title(title, session_id)
        )
        if session_id not in state.active_sessions:
            state.active_sessions.insert(0, session_id)
        if state.session_id == session_id:
            state.is_new_conversation = False
            state.has_empty_chat = False

    async def _touch_session(self, session_id: str) -> None:
        try:
            await self._store.touch_session(session_id, self._user_id)
        except PersistenceError:
            logger.warning("Failed to bump session updated_at", session_id=session_id)

    def _rollback_send(
        self, session_id: str, pending: PendingMessage, error: str
    ) -> None:
        state = self.state
        if state.pending is not None and state.pending.message is pending.message:
            state.pending = None
        for index in range(len(state.messages) - 1, -1, -1):
            if state.messages[index] is pending.message:
                state.messages = state.messages[:index] + state.messages[index + 1 :]
                break
        if state.session_id == session_id:
            self._set_processing(False)
            state.error = error
        logger.warning(
            "Send failed, optimistic message rolled back",
            session_id=session_id,
            error=error,
        )

    def _is_current_pending(self, pending: PendingMessage) -> bool:
        current = self.state.pending
        return current is not None and current.message is pending.message

    async def _safety_check(self, session_id: str, pending: PendingMessage) -> None:
        state = self.state
        if state.session_id != session_id or not state.is_processing:
            return
        if not self._is_current_pending(pending):
            return
        logger.info("Reply overdue, forcing reconciliation", session_id=session_id)
        await self.load_messages_for_session(session_id, force_load=True)
        if state.is_processing and self._is_current_pending(pending):
            self._schedule(
                self._config.safety_reset_delay,
                partial(self._safety_reset, session_id, pending),
                name=f"safety-reset:{session_id}",
            )

    async def _safety_reset(self, session_id: str, pending: PendingMessage) -> None:
        state = self.state
        if state.session_id != session_id or not state.is_processing:
            return
        if state.pending is not None and not self._is_current_pending(pending):
            return
        logger.warning(
            "No reply after safety timeout, clearing processing state",
            session_id=session_id,
        )
        self.reset_processing_state()

    def _set_processing(self, value: bool) -> None:
        if value == self.state.is_processing:
            return
        self.state.is_processing = value
        if value:
            self._processing_guard = self._schedule(
                self._config.stuck_processing_timeout,
                self._on_processing_stuck,
                name="processing-guard",
            )
        else:
            self._cancel_processing_guard()

    def _cancel_processing_guard(self) -> None:
        guard, self._processing_guard = self._processing_guard, None
        if guard is not None and guard is not asyncio.current_task():
            guard.cancel()

    async def _on_processing_stuck(self) -> None:
        self._processing_guard = None
        if self.state.is_processing:
            logger.warning(
                "Processing stuck for too long, resetting",
                session_id=self.state.session_id,
                timeout=self._config.stuck_processing_timeout,
            )
            self.reset_processing_state()

    def _start_polling(self, session_id: str) -> None:
        if self._poller is not None:
            self._poller.cancel()
        self._poller = SessionPoller(
            session_id, self._config.poll_interval, self.load_messages_for_session
        )
        self._poller.start()

    def _release_phase(self) -> None:
        """Leave the busy phase of a create or change."""
        if self._phase in BUSY_PHASES:
            polling = self._poller is not None
            self._phase = SyncPhase.POLLING if polling else SyncPhase.IDLE

    async def _stop_polling(self) -> None:
        poller, self._poller = self._poller, None
        if poller is not None:
            await poller.stop()

    def _schedule(
        self,
        delay: float,
        callback: Callable[[], Awaitable[object]],
        name: str,
    ) -> asyncio.Task[None]:
        async def runner() -> None:
            await asyncio.sleep(delay)
            try:
                await callback()
            except Exception:
                logger.exception("Timer callback failed", timer=name)

        task = asyncio.create_task(runner(), name=name)
        self._timers.add(task)
        task.add_done_callback(self._timers.discard)
        return task
