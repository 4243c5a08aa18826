"""Client-side conversation state: confirmed log plus optimistic entries."""

from __future__ import annotations

from collections.abc import Callable

from loguru import logger

from sandbox_agent.client.api import OrchestratorClient
from sandbox_agent.errors import OrchestratorError
from sandbox_agent.models import ConfirmedMessage, ConversationState, PendingMessage


class Conversation:
    """Owner of the confirmed sequence and the pending set.

    ``state`` is replaced wholesale by each poll. ``pending`` grows on submit
    and shrinks only when a poll confirms an entry, or when its own submit
    request fails.
    """

    def __init__(self, api: OrchestratorClient, conversation_id: str | None = None) -> None:
        self.api = api
        self.conversation_id = conversation_id
        self.state = ConversationState()
        self.pending: list[PendingMessage] = []
        self._submit_callbacks: list[Callable[[], None]] = []

    @property
    def messages(self) -> list[ConfirmedMessage]:
        """Confirmed messages followed by pending ones rendered as user entries."""
        confirmed = list(self.state.messages)
        parent = confirmed[-1].uuid if confirmed else None
        return confirmed + [entry.as_confirmed(parent) for entry in self.pending]

    def on_submit(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback run at the start of every submit.

        Returns:
            Unsubscribe function.
        """
        self._submit_callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._submit_callbacks:
                self._submit_callbacks.remove(callback)

        return unsubscribe

    async def refresh(self) -> ConversationState:
        """Fetch once, outside the poll loop (used to seed a watcher)."""
        if self.conversation_id is None:
            raise OrchestratorError("conversation has not been started")
        self.state = await self.api.fetch_conversation(self.conversation_id)
        return self.state

    async def submit(self, text: str) -> PendingMessage:
        if not text.strip():
            raise ValueError("message content is required")
        for callback in self._submit_callbacks:
            callback()

        entry = PendingMessage.create(text)
        self.pending.append(entry)
        self.state = self.state.model_copy(update={"error_message": None})
        try:
            response = await self.api.send_message(text, conversation_id=self.conversation_id)
        except OrchestratorError as exc:
            self.pending = [item for item in self.pending if item.id != entry.id]
            self.state = self.state.model_copy(update={"error_message": str(exc)})
            logger.warning("conversation.submit.failed error={}", exc)
            raise

        self.conversation_id = response.conversation_id
        self.state = self.state.model_copy(update={"status": response.status})
        return entry
