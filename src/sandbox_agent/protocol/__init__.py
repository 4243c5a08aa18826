"""Stdio control protocol."""

from sandbox_agent.protocol.channel import ControlChannel, open_stdin_reader
from sandbox_agent.protocol.frames import (
    PENDING_SESSION_ID,
    Frame,
    ProcessError,
    ProcessReady,
    ProcessStart,
    ProcessStopped,
    SessionComplete,
    SessionMessage,
    SessionMetrics,
    SessionStarted,
    UnknownFrame,
    parse_inbound_frame,
)

__all__ = [
    "PENDING_SESSION_ID",
    "ControlChannel",
    "Frame",
    "ProcessError",
    "ProcessReady",
    "ProcessStart",
    "ProcessStopped",
    "SessionComplete",
    "SessionMessage",
    "SessionMetrics",
    "SessionStarted",
    "UnknownFrame",
    "open_stdin_reader",
    "parse_inbound_frame",
]
