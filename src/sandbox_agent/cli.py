"""sandbox-agent command line."""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich.console import Console

from sandbox_agent.agent.runner import SessionStatus
from sandbox_agent.agent.serve import serve_stdio
from sandbox_agent.client.api import OrchestratorClient
from sandbox_agent.client.conversation import Conversation
from sandbox_agent.client.poller import Poller
from sandbox_agent.client.render import ConversationRenderer
from sandbox_agent.config import Settings, get_settings
from sandbox_agent.errors import ConfigurationError, OrchestratorError
from sandbox_agent.logging_utils import configure_logging
from sandbox_agent.session_log import read_session_log

app = typer.Typer(name="sandbox-agent", help="Sandboxed agent sessions and their polling client", add_completion=False)


def _load_settings(api_base: str | None = None) -> Settings:
    overrides: dict[str, object] = {}
    if api_base:
        overrides["api_base"] = api_base
    settings = get_settings(**overrides)
    configure_logging(settings.log_level)
    return settings


async def _follow(conversation: Conversation, settings: Settings, renderer: ConversationRenderer) -> None:
    def redraw() -> None:
        renderer.new_messages(conversation.messages, {entry.id for entry in conversation.pending})
        renderer.status(conversation.state)

    poller = Poller.for_conversation(conversation, settings, on_refresh=redraw)
    poller.start()
    try:
        await poller.wait(settle=True)
    finally:
        await poller.stop()
        poller.close()
    redraw()


@app.command()
def agent() -> None:
    """Serve one session over stdin/stdout (run inside the sandbox)."""
    settings = _load_settings()
    session = asyncio.run(serve_stdio(settings))
    if session.status is SessionStatus.ERRORED:
        raise typer.Exit(code=1)


@app.command()
def send(
    message: str = typer.Argument(..., help="Message to send"),
    conversation_id: str | None = typer.Option(None, "--conversation", "-c", help="Continue this conversation"),
    api_base: str | None = typer.Option(None, "--api-base", help="Orchestrator base URL"),
) -> None:
    """Send a message and follow the conversation until it settles."""
    settings = _load_settings(api_base)
    console = Console()

    async def _run() -> Conversation:
        async with OrchestratorClient.from_settings(settings) as api:
            conversation = Conversation(api, conversation_id)
            renderer = ConversationRenderer(console)
            if conversation_id is not None:
                await conversation.refresh()
                renderer.new_messages(conversation.state.messages)
            entry = await conversation.submit(message)
            renderer.new_messages(conversation.messages, {entry.id})
            await _follow(conversation, settings, renderer)
            return conversation

    try:
        settings.validate_client()
        conversation = asyncio.run(_run())
    except (ConfigurationError, OrchestratorError) as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc
    console.print(f"[dim]conversation: {conversation.conversation_id}[/dim]")
    if conversation.state.status == "error":
        raise typer.Exit(code=1)


@app.command()
def watch(
    conversation_id: str = typer.Argument(..., help="Conversation to follow"),
    api_base: str | None = typer.Option(None, "--api-base", help="Orchestrator base URL"),
) -> None:
    """Print a conversation and keep polling while it runs."""
    settings = _load_settings(api_base)
    console = Console()

    async def _run() -> Conversation:
        async with OrchestratorClient.from_settings(settings) as api:
            conversation = Conversation(api, conversation_id)
            renderer = ConversationRenderer(console)
            await conversation.refresh()
            renderer.new_messages(conversation.state.messages)
            renderer.status(conversation.state)
            await _follow(conversation, settings, renderer)
            return conversation

    try:
        settings.validate_client()
        conversation = asyncio.run(_run())
    except (ConfigurationError, OrchestratorError) as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc
    if conversation.state.status == "error":
        raise typer.Exit(code=1)


@app.command()
def log(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Session log file (.jsonl)"),  # noqa: B008
) -> None:
    """Render the user-facing entries of a session log."""
    _load_settings()
    renderer = ConversationRenderer(Console())
    messages = read_session_log(path)
    if not messages:
        typer.echo("(no messages)")
        return
    renderer.new_messages(messages)
