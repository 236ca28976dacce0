"""Pure rules for merging optimistic chat state with durable history.

Nothing here touches timers or I/O, so every rule can be exercised with
plain lists of messages.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from oraculo.schemas.chat_schema import ChatMessage, MessageType

VALID_TYPES: frozenset[str] = frozenset({"human", "ai"})


@dataclass(frozen=True)
class PendingMessage:
    """A sent human message not yet seen back, with its reply, in storage.

    ``human_baseline`` is the number of durable human messages that existed
    when it was sent; only human entries past that point can confirm it.
    """

    message: ChatMessage
    human_baseline: int


@dataclass(frozen=True)
class Reconciliation:
    """Outcome of reconciling one durable read with local state."""

    messages: list[ChatMessage]
    pending: PendingMessage | None
    is_processing: bool
    limit_reached: bool
    changed: bool


def normalize_session_id(value: str | None) -> str:
    """Trim incidental whitespace from a session id."""
    return (value or "").strip()


def parse_history_entry(raw: Any) -> ChatMessage | None:
    """Turn a stored payload into a ChatMessage, or None if malformed."""
    if not isinstance(raw, dict):
        return None
    kind = raw.get("type")
    content = raw.get("content")
    if kind not in VALID_TYPES or not isinstance(content, str):
        return None
    return ChatMessage(type=kind, content=content)


def parse_history(rows: Iterable[Any]) -> list[ChatMessage]:
    """Keep the structurally valid entries of a history read, in order."""
    messages: list[ChatMessage] = []
    for raw in rows:
        message = parse_history_entry(raw)
        if message is not None:
            messages.append(message)
    return messages


def count_messages(messages: Iterable[ChatMessage], kind: MessageType) -> int:
    """Count messages of one type."""
    return sum(1 for message in messages if message.type == kind)


def find_pending_index(
    pending: PendingMessage, messages: list[ChatMessage]
) -> int | None:
    """Index of the durable entry matching the pending message, if any."""
    humans_seen = 0
    for index, message in enumerate(messages):
        if message.type != "human":
            continue
        if humans_seen >= pending.human_baseline and (
            message.content == pending.message.content
        ):
            return index
        humans_seen += 1
    return None


def is_reply_confirmed(pending: PendingMessage, messages: list[ChatMessage]) -> bool:
    """True once the pending message is stored and an ai reply ends the list."""
    index = find_pending_index(pending, messages)
    if index is None:
        return False
    return messages[-1].type == "ai" and len(messages) - 1 > index


def derive_processing_state(
    pending: PendingMessage | None, messages: list[ChatMessage]
) -> bool:
    """Decide whether a reply is still outstanding.

    With a tracked pending message the answer depends only on whether its
    reply is confirmed. Without one (e.g. after a reload) it is read from
    the shape of the history: a trailing human message, or more human than
    ai messages, means a reply is still owed.
    """
    if pending is not None:
        return not is_reply_confirmed(pending, messages)
    if not messages:
        return False
    if messages[-1].type == "human":
        return True
    return count_messages(messages, "human") > count_messages(messages, "ai")


def reconcile(
    fetched: list[ChatMessage],
    pending: PendingMessage | None,
    displayed: list[ChatMessage],
    max_human_messages: int,
    stalled_at: int | None = None,
) -> Reconciliation:
    """Merge a durable read with the pending slot and the displayed list.

    Args:
        fetched: Valid durable messages in storage order.
        pending: The outstanding human message, if one is tracked.
        displayed: Messages currently shown.
        max_human_messages: Per-session human message limit.
        stalled_at: Durable row count at which processing was force-cleared;
            while the count is unchanged, processing is not re-derived.
    """
    next_pending = pending
    if pending is None:
        merged = list(fetched)
        if stalled_at is not None and len(fetched) == stalled_at:
            processing = False
        else:
            processing = derive_processing_state(None, merged)
    elif is_reply_confirmed(pending, fetched):
        merged = list(fetched)
        next_pending = None
        processing = False
    elif find_pending_index(pending, fetched) is not None:
        merged = list(fetched)
        processing = True
    else:
        merged = [*fetched, pending.message]
        processing = True

    changed = merged != displayed
    return Reconciliation(
        messages=merged if changed else displayed,
        pending=next_pending,
        is_processing=processing,
        limit_reached=count_messages(merged, "human") >= max_human_messages,
        changed=changed,
    )
