"""Execution engine abstraction and the agent CLI backend."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Sequence
from contextlib import suppress
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, TypeAlias

from loguru import logger

from sandbox_agent.config import Settings
from sandbox_agent.errors import ExecutionFailure
from sandbox_agent.protocol.frames import SessionMetrics

STREAM_LINE_LIMIT = 16 * 1024 * 1024


@dataclass(frozen=True)
class SessionInitialized:
    """The engine assigned the durable session identifier."""

    session_id: str


@dataclass(frozen=True)
class ExecutionResult:
    """Terminal result of one execution."""

    metrics: SessionMetrics
    is_error: bool = False
    text: str | None = None


@dataclass(frozen=True)
class EngineMessage:
    """Any other engine output (assistant turns, tool calls, ...)."""

    kind: str
    payload: dict[str, Any] = field(default_factory=dict)


ExecutionEvent: TypeAlias = SessionInitialized | ExecutionResult | EngineMessage


class ExecutionEngine(Protocol):
    """Backend that runs one prompt and streams execution events in order.

    Implementations return an async iterator that may be closed early with
    ``aclose()``; closing must release whatever the backend holds.
    """

    def run(self, prompt: str, *, resume_session_id: str | None = None) -> AsyncIterator[ExecutionEvent]: ...


def event_from_payload(payload: dict[str, Any]) -> ExecutionEvent:
    """Translate one stream-json object into an execution event."""
    kind = str(payload.get("type", ""))
    if kind == "system" and payload.get("subtype") == "init":
        session_id = payload.get("session_id")
        if isinstance(session_id, str) and session_id:
            return SessionInitialized(session_id=session_id)
    if kind == "result":
        return ExecutionResult(
            metrics=SessionMetrics.model_validate({
                "duration_ms": payload.get("duration_ms"),
                "duration_api_ms": payload.get("duration_api_ms"),
                "total_cost_usd": payload.get("total_cost_usd"),
                "num_turns": payload.get("num_turns"),
            }),
            is_error=bool(payload.get("is_error", False)),
            text=payload.get("result") if isinstance(payload.get("result"), str) else None,
        )
    return EngineMessage(kind=kind, payload=payload)


class ProcessEngine:
    """Run the agent CLI in stream-json mode and translate its stdout."""

    def __init__(
        self,
        command: str,
        *,
        workspace: Path,
        max_turns: int = 50,
        permission_mode: str = "bypassPermissions",
        allowed_tools: Sequence[str] = (),
    ) -> None:
        self.command = command
        self.workspace = workspace
        self.max_turns = max_turns
        self.permission_mode = permission_mode
        self.allowed_tools = list(allowed_tools)

    @classmethod
    def from_settings(cls, settings: Settings) -> ProcessEngine:
        return cls(
            settings.engine_command,
            workspace=settings.workspace_dir,
            max_turns=settings.max_turns,
            permission_mode=settings.permission_mode,
            allowed_tools=settings.allowed_tools,
        )

    def build_argv(self, prompt: str, *, resume_session_id: str | None = None) -> list[str]:
        argv = [
            self.command,
            "-p",
            prompt,
            "--output-format",
            "stream-json",
            "--verbose",
            "--max-turns",
            str(self.max_turns),
            "--permission-mode",
            self.permission_mode,
        ]
        if self.allowed_tools:
            argv += ["--allowedTools", ",".join(self.allowed_tools)]
        if resume_session_id:
            argv += ["--resume", resume_session_id]
        return argv

    async def run(self, prompt: str, *, resume_session_id: str | None = None) -> AsyncIterator[ExecutionEvent]:
        argv = self.build_argv(prompt, resume_session_id=resume_session_id)
        logger.info("engine.process.start command={} cwd={} resume={}", self.command, self.workspace, resume_session_id)
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(self.workspace),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LINE_LIMIT,
            )
        except FileNotFoundError as exc:
            raise ExecutionFailure(f"engine command not found: {self.command}") from exc

        assert process.stdout is not None and process.stderr is not None
        stderr_task = asyncio.create_task(process.stderr.read())
        saw_result = False
        try:
            async for raw in process.stdout:
                line = raw.decode("utf-8", errors="replace").strip()
                if not line:
                    continue
                try:
                    payload = json.loads(line)
                except json.JSONDecodeError:
                    logger.debug("engine.process.non_json line={}", line[:200])
                    continue
                if not isinstance(payload, dict):
                    continue
                event = event_from_payload(payload)
                if isinstance(event, ExecutionResult):
                    saw_result = True
                yield event

            returncode = await process.wait()
            stderr_text = (await stderr_task).decode("utf-8", errors="replace").strip()
            logger.info("engine.process.exit returncode={}", returncode)
            if returncode != 0 and not saw_result:
                raise ExecutionFailure(stderr_text or f"exit={returncode}")
        finally:
            if process.returncode is None:
                with suppress(ProcessLookupError):
                    process.kill()
                await process.wait()
            if not stderr_task.done():
                stderr_task.cancel()
                with suppress(asyncio.CancelledError):
                    await stderr_task
