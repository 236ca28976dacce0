"""Tests for the history reconciliation rules."""

from oraculo.schemas.chat_schema import ChatMessage
from oraculo.services.reconciliation import (
    PendingMessage,
    derive_processing_state,
    find_pending_index,
    is_reply_confirmed,
    normalize_session_id,
    parse_history,
    parse_history_entry,
    reconcile,
)


def human(content: str) -> ChatMessage:
    return ChatMessage(type="human", content=content)


def ai(content: str) -> ChatMessage:
    return ChatMessage(type="ai", content=content)


class TestNormalizeSessionId:
    def test_strips_whitespace(self) -> None:
        assert normalize_session_id("  abc \n") == "abc"

    def test_none_becomes_empty(self) -> None:
        assert normalize_session_id(None) == ""


class TestParseHistory:
    def test_valid_entry(self) -> None:
        assert parse_history_entry({"type": "ai", "content": "olá"}) == ai("olá")

    def test_extra_keys_ignored(self) -> None:
        raw = {"type": "human", "content": "oi", "additional_kwargs": {}}
        assert parse_history_entry(raw) == human("oi")

    def test_rejects_malformed(self) -> None:
        assert parse_history_entry("text") is None
        assert parse_history_entry({"type": "system", "content": "x"}) is None
        assert parse_history_entry({"type": "human"}) is None
        assert parse_history_entry({"type": "ai", "content": 42}) is None

    def test_keeps_order_and_drops_invalid(self) -> None:
        rows = [
            {"type": "human", "content": "1"},
            None,
            {"type": "ai", "content": "2"},
        ]
        assert parse_history(rows) == [human("1"), ai("2")]


class TestPendingMatching:
    def test_matches_human_after_baseline(self) -> None:
        pending = PendingMessage(message=human("oi"), human_baseline=1)
        messages = [human("oi"), ai("olá"), human("oi")]
        assert find_pending_index(pending, messages) == 2

    def test_earlier_identical_text_does_not_match(self) -> None:
        pending = PendingMessage(message=human("oi"), human_baseline=1)
        messages = [human("oi"), ai("olá")]
        assert find_pending_index(pending, messages) is None

    def test_confirmed_only_with_trailing_ai(self) -> None:
        pending = PendingMessage(message=human("oi"), human_baseline=0)
        assert not is_reply_confirmed(pending, [human("oi")])
        assert is_reply_confirmed(pending, [human("oi"), ai("olá")])

    def test_missing_pending_is_not_confirmed(self) -> None:
        pending = PendingMessage(message=human("novo"), human_baseline=1)
        assert not is_reply_confirmed(pending, [human("oi"), ai("olá")])


class TestDeriveProcessingState:
    def test_empty_history(self) -> None:
        assert derive_processing_state(None, []) is False

    def test_trailing_human(self) -> None:
        assert derive_processing_state(None, [human("a")]) is True

    def test_more_humans_than_ai(self) -> None:
        messages = [human("a"), human("b"), ai("c")]
        assert derive_processing_state(None, messages) is True

    def test_balanced_history(self) -> None:
        assert derive_processing_state(None, [human("a"), ai("b")]) is False

    def test_pending_overrides_shape(self) -> None:
        pending = PendingMessage(message=human("b"), human_baseline=1)
        messages = [human("a"), ai("x"), human("b"), ai("y")]
        assert derive_processing_state(pending, messages) is False


class TestReconcile:
    def test_no_pending_takes_durable(self) -> None:
        fetched = [human("a"), ai("b")]
        result = reconcile(fetched, None, [], max_human_messages=10)
        assert result.messages == fetched
        assert result.changed is True
        assert result.is_processing is False
        assert result.pending is None

    def test_unchanged_keeps_displayed_list(self) -> None:
        displayed = [human("a"), ai("b")]
        result = reconcile([human("a"), ai("b")], None, displayed, 10)
        assert result.changed is False
        assert result.messages is displayed

    def test_pending_missing_is_appended(self) -> None:
        pending = PendingMessage(message=human("novo"), human_baseline=1)
        fetched = [human("a"), ai("b")]
        result = reconcile(fetched, pending, [*fetched, pending.message], 10)
        assert result.messages == [human("a"), ai("b"), human("novo")]
        assert result.changed is False
        assert result.pending is pending
        assert result.is_processing is True

    def test_pending_stored_without_reply(self) -> None:
        pending = PendingMessage(message=human("novo"), human_baseline=1)
        fetched = [human("a"), ai("b"), human("novo")]
        result = reconcile(fetched, pending, [], 10)
        assert result.messages == fetched
        assert result.pending is pending
        assert result.is_processing is True

    def test_pending_confirmed(self) -> None:
        pending = PendingMessage(message=human("novo"), human_baseline=1)
        fetched = [human("a"), ai("b"), human("novo"), ai("c")]
        result = reconcile(fetched, pending, [], 10)
        assert result.pending is None
        assert result.is_processing is False
        assert result.messages == fetched

    def test_stall_mark_suppresses_shape_rule(self) -> None:
        fetched = [human("a")]
        assert reconcile(fetched, None, [], 10, stalled_at=1).is_processing is False
        assert reconcile(fetched, None, [], 10, stalled_at=0).is_processing is True

    def test_limit_counts_pending_message(self) -> None:
        fetched = [m for i in range(2) for m in (human(str(i)), ai(str(i)))]
        pending = PendingMessage(message=human("x"), human_baseline=2)
        result = reconcile(fetched, pending, [], max_human_messages=3)
        assert result.limit_reached is True

    def test_limit_not_reached(self) -> None:
        result = reconcile([human("a"), ai("b")], None, [], max_human_messages=2)
        assert result.limit_reached is False
