"""Application-level exception types for sandbox-agent."""

from __future__ import annotations


class SandboxAgentError(Exception):
    """Base exception for sandbox-agent."""


class ConfigurationError(SandboxAgentError):
    """Raised when settings are missing or inconsistent."""


class ProtocolError(SandboxAgentError):
    """Raised when an inbound frame is malformed or not the expected kind."""


class SessionAbort(SandboxAgentError):
    """Raised when the input stream closes before a required frame arrives."""


class ExecutionFailure(SandboxAgentError):
    """Raised when the execution engine fails while a session is executing."""


class OrchestratorError(SandboxAgentError):
    """Raised when the orchestrator HTTP surface answers with a failure."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
