"""Merge fetched conversation state with optimistic local entries."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from sandbox_agent.models import ConfirmedMessage, ConversationState, PendingMessage


@dataclass(frozen=True)
class PollSnapshot:
    """What the previous poll saw, kept only for change detection."""

    status: str = ""
    message_count: int = 0

    @classmethod
    def of(cls, state: ConversationState) -> PollSnapshot:
        return cls(status=state.status, message_count=len(state.messages))


@dataclass(frozen=True)
class ReconcileResult:
    pending: list[PendingMessage]
    retired: list[PendingMessage]
    refresh: bool
    snapshot: PollSnapshot


class Reconciler:
    """Retire confirmed pending entries and gate the secondary refresh signal."""

    @staticmethod
    def is_confirmed(pending: PendingMessage, confirmed: Sequence[ConfirmedMessage]) -> bool:
        return any(message.role == "user" and message.text == pending.text for message in confirmed)

    def retire(
        self, pending: Sequence[PendingMessage], confirmed: Sequence[ConfirmedMessage]
    ) -> tuple[list[PendingMessage], list[PendingMessage]]:
        """Split ``pending`` into (still pending, retired) against the latest fetch."""
        kept: list[PendingMessage] = []
        retired: list[PendingMessage] = []
        for entry in pending:
            (retired if self.is_confirmed(entry, confirmed) else kept).append(entry)
        return kept, retired

    @staticmethod
    def refresh_needed(previous: PollSnapshot, current: PollSnapshot) -> bool:
        return previous != current

    def reconcile(
        self, pending: Sequence[PendingMessage], state: ConversationState, previous: PollSnapshot
    ) -> ReconcileResult:
        kept, retired = self.retire(pending, state.messages)
        snapshot = PollSnapshot.of(state)
        return ReconcileResult(
            pending=kept,
            retired=retired,
            refresh=self.refresh_needed(previous, snapshot),
            snapshot=snapshot,
        )
