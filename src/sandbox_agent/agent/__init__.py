"""Agent-side session lifecycle."""

from sandbox_agent.agent.engine import (
    EngineMessage,
    ExecutionEngine,
    ExecutionEvent,
    ExecutionResult,
    ProcessEngine,
    SessionInitialized,
)
from sandbox_agent.agent.notifier import CompletionNotifier
from sandbox_agent.agent.runner import RunnerState, Session, SessionRunner, SessionStatus

__all__ = [
    "CompletionNotifier",
    "EngineMessage",
    "ExecutionEngine",
    "ExecutionEvent",
    "ExecutionResult",
    "ProcessEngine",
    "RunnerState",
    "Session",
    "SessionInitialized",
    "SessionRunner",
    "SessionStatus",
]
