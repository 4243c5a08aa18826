from __future__ import annotations

from sandbox_agent.client.reconciler import PollSnapshot, Reconciler
from sandbox_agent.models import ConfirmedMessage, ConversationState, PendingMessage


def _message(role: str, content, uuid: str = "u1") -> ConfirmedMessage:
    return ConfirmedMessage.model_validate(
        {"type": role, "uuid": uuid, "timestamp": "2026-01-01T00:00:00Z", "message": {"role": role, "content": content}}
    )


def test_pending_retired_by_matching_user_message() -> None:
    pending = [PendingMessage.create("Build me a site")]
    state = ConversationState(status="running", messages=[_message("user", "Build me a site")])

    result = Reconciler().reconcile(pending, state, PollSnapshot())

    assert result.pending == []
    assert result.retired == pending


def test_assistant_echo_does_not_retire() -> None:
    pending = [PendingMessage.create("hello")]
    state = ConversationState(status="running", messages=[_message("assistant", [{"type": "text", "text": "hello"}])])

    result = Reconciler().reconcile(pending, state, PollSnapshot())

    assert result.pending == pending


def test_segment_content_is_matched_after_extraction() -> None:
    pending = [PendingMessage.create("line one\nline two"), PendingMessage.create("other")]
    confirmed = [
        _message(
            "user",
            [{"type": "text", "text": "line one"}, {"type": "tool_result", "content": "x"}, {"type": "text", "text": "line two"}],
        )
    ]

    kept, retired = Reconciler().retire(pending, confirmed)

    assert [entry.text for entry in retired] == ["line one\nline two"]
    assert [entry.text for entry in kept] == ["other"]


def test_only_exact_text_matches() -> None:
    pending = [PendingMessage.create("hello ")]
    kept, _ = Reconciler().retire(pending, [_message("user", "hello")])
    assert kept == pending


def test_refresh_fires_only_when_status_or_count_changes() -> None:
    reconciler = Reconciler()
    state = ConversationState(status="running", messages=[_message("user", "a")])
    snapshot = PollSnapshot()

    first = reconciler.reconcile([], state, snapshot)
    assert first.refresh

    fired = 0
    snapshot = first.snapshot
    for _ in range(5):
        result = reconciler.reconcile([], state, snapshot)
        fired += result.refresh
        snapshot = result.snapshot
    assert fired == 0

    grown = ConversationState(status="running", messages=[_message("user", "a"), _message("assistant", "b", "u2")])
    assert reconciler.reconcile([], grown, snapshot).refresh

    finished = ConversationState(status="completed", messages=state.messages)
    changed = reconciler.reconcile([], finished, snapshot)
    assert changed.refresh
    assert changed.snapshot == PollSnapshot(status="completed", message_count=1)
