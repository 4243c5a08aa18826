"""Terminal rendering for conversations."""

from __future__ import annotations

from collections.abc import Collection, Iterable

from rich.console import Console
from rich.markup import escape

from sandbox_agent.models import ConfirmedMessage, ConversationState

_ROLE_STYLES = {
    "user": "bold cyan",
    "assistant": "bold yellow",
    "system": "dim",
}


class ConversationRenderer:
    """Print conversation entries once each, in order."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()
        self._printed: set[str] = set()
        self._last_status: str | None = None

    def message(self, message: ConfirmedMessage, *, pending: bool = False) -> None:
        text = message.text
        if not text:
            return
        style = _ROLE_STYLES.get(message.role, "bold")
        suffix = " [dim](sending)[/dim]" if pending else ""
        self.console.print(f"[{style}]{message.role}:[/{style}] {escape(text)}{suffix}")

    def new_messages(self, messages: Iterable[ConfirmedMessage], pending_ids: Collection[str] = ()) -> int:
        """Print messages not printed before. Ids in ``pending_ids`` are marked as sending."""
        count = 0
        for message in messages:
            if message.uuid in self._printed:
                continue
            self._printed.add(message.uuid)
            self.message(message, pending=message.uuid in pending_ids)
            count += 1
        return count

    def status(self, state: ConversationState) -> None:
        if state.status == self._last_status:
            return
        self._last_status = state.status
        if state.status == "error":
            self.console.print(f"[bold red]Error:[/bold red] {escape(state.error_message or 'unknown error')}")
        else:
            self.console.print(f"[dim]status: {state.status}[/dim]")
