"""Session runner: drive one agent execution over the control channel."""

from __future__ import annotations

import enum
from contextlib import aclosing
from dataclasses import dataclass, field

from loguru import logger

from sandbox_agent.agent.engine import EngineMessage, ExecutionEngine, ExecutionResult, SessionInitialized
from sandbox_agent.agent.notifier import CompletionNotifier
from sandbox_agent.errors import ExecutionFailure, ProtocolError, SessionAbort
from sandbox_agent.protocol.channel import ControlChannel
from sandbox_agent.protocol.frames import (
    PENDING_SESSION_ID,
    ProcessError,
    ProcessReady,
    ProcessStart,
    ProcessStopped,
    SessionComplete,
    SessionMessage,
    SessionMetrics,
    SessionStarted,
)


class RunnerState(enum.StrEnum):
    INIT = "init"
    AWAIT_START = "await_start"
    AWAIT_MESSAGE = "await_message"
    EXECUTING = "executing"
    COMPLETE = "complete"
    FAILED = "failed"
    STOPPED = "stopped"


class SessionStatus(enum.StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERRORED = "errored"


@dataclass
class Session:
    """One execution of the agent engine. Mutated only by the runner."""

    status: SessionStatus = SessionStatus.PENDING
    metrics: SessionMetrics = field(default_factory=SessionMetrics)
    error_message: str | None = None
    _session_id: str | None = None

    @property
    def session_id(self) -> str | None:
        return self._session_id

    def assign_id(self, session_id: str) -> bool:
        """Set the identifier once. Returns False if one was already assigned."""
        if self._session_id is not None:
            return False
        self._session_id = session_id
        return True


class SessionRunner:
    """State machine for one agent session.

    ``INIT -> AWAIT_START -> AWAIT_MESSAGE -> EXECUTING -> COMPLETE | FAILED -> STOPPED``.
    Every failure funnels into one path (``process_error`` plus an error
    notification) and every run ends with ``process_stopped``.
    """

    def __init__(
        self,
        channel: ControlChannel,
        engine: ExecutionEngine,
        notifier: CompletionNotifier,
        *,
        resume_session_id: str | None = None,
    ) -> None:
        self.channel = channel
        self.engine = engine
        self.notifier = notifier
        self.default_resume_id = resume_session_id
        self.session = Session()
        self.state = RunnerState.INIT

    def _transition(self, state: RunnerState) -> None:
        logger.debug("session.runner.state from={} to={}", self.state, state)
        self.state = state

    async def run(self) -> Session:
        self._transition(RunnerState.AWAIT_START)
        try:
            resume_id = await self._accept_start()
            self._transition(RunnerState.AWAIT_MESSAGE)
            prompt = await self._accept_message()
            self._transition(RunnerState.EXECUTING)
            await self._execute(prompt, resume_id)
        except Exception as exc:
            await self._fail(exc)
        finally:
            self._transition(RunnerState.STOPPED)
            self.channel.close()
            self.channel.emit(ProcessStopped())
        return self.session

    async def _accept_start(self) -> str | None:
        try:
            frame = await self.channel.read_frame()
        except ProtocolError as exc:
            raise ProtocolError("Invalid JSON for process_start") from exc
        if frame is None:
            raise SessionAbort("No input received")
        if not isinstance(frame, ProcessStart):
            raise ProtocolError("Expected process_start")

        resume_id = frame.session_id or self.default_resume_id or None
        logger.info("session.runner.ready resume={}", resume_id)
        self.channel.emit(ProcessReady(session_id=resume_id or PENDING_SESSION_ID))
        return resume_id

    async def _accept_message(self) -> str:
        try:
            frame = await self.channel.read_frame()
        except ProtocolError as exc:
            raise ProtocolError("Invalid JSON for session_message") from exc
        if frame is None:
            raise SessionAbort("No session_message received")
        if not isinstance(frame, SessionMessage):
            raise ProtocolError("Expected session_message")

        prompt = frame.prompt_text()
        if not prompt:
            raise ProtocolError("Empty prompt")
        return prompt

    async def _execute(self, prompt: str, resume_id: str | None) -> None:
        self.session.status = SessionStatus.RUNNING
        logger.info("session.runner.execute prompt={!r} resume={}", prompt[:100], resume_id)
        completed = False
        try:
            async with aclosing(self.engine.run(prompt, resume_session_id=resume_id)) as events:
                async for event in events:
                    match event:
                        case SessionInitialized(session_id=session_id):
                            if self.session.assign_id(session_id):
                                self.channel.emit(SessionStarted(session_id=session_id))
                            else:
                                logger.warning("session.runner.reinit ignored session_id={}", session_id)
                        case ExecutionResult(metrics=metrics):
                            if completed:
                                logger.warning("session.runner.extra_result ignored")
                                continue
                            completed = True
                            await self._complete(metrics, resume_id)
                        case EngineMessage(kind=kind):
                            logger.trace("session.runner.event kind={}", kind)
        except Exception as exc:
            if completed:
                # The session has already been reported as completed.
                logger.warning("session.runner.late_failure error={!r}", exc)
                return
            if isinstance(exc, (ProtocolError, SessionAbort, ExecutionFailure)):
                raise
            raise ExecutionFailure(str(exc) or type(exc).__name__) from exc

        if not completed:
            logger.warning("session.runner.no_result session_id={}", self.session.session_id)
            await self._complete(SessionMetrics(), resume_id)

    async def _complete(self, metrics: SessionMetrics, resume_id: str | None) -> None:
        session_id = self.session.session_id or resume_id
        self.session.metrics = metrics
        self.session.status = SessionStatus.COMPLETED
        self._transition(RunnerState.COMPLETE)
        self.channel.emit(SessionComplete(session_id=session_id, result=metrics))
        await self.notifier.notify("completed", session_id)

    async def _fail(self, exc: Exception) -> None:
        message = str(exc)
        logger.error("session.runner.failed kind={} message={}", type(exc).__name__, message)
        self.session.status = SessionStatus.ERRORED
        self.session.error_message = message
        self._transition(RunnerState.FAILED)
        self.channel.emit(ProcessError(message=message))
        await self.notifier.notify("error", None, message)
