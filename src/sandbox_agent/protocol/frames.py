"""Control protocol frame models.

Frames are newline-delimited JSON objects tagged by ``type``. Inbound frames
come from the orchestrator on stdin, outbound frames go back on stdout.
"""

from __future__ import annotations

import json
from typing import Any, ClassVar, Literal, TypeAlias

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from sandbox_agent.errors import ProtocolError
from sandbox_agent.models import ContentSegment, extract_text

PENDING_SESSION_ID = "pending"


class Frame(BaseModel):
    """Base class for all protocol frames."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    frame_type: ClassVar[str]

    def to_line(self) -> str:
        return self.model_dump_json(exclude_none=True)


# Inbound


class ProcessStart(Frame):
    frame_type: ClassVar[str] = "process_start"

    type: Literal["process_start"] = "process_start"
    session_id: str | None = None


class SessionMessage(Frame):
    frame_type: ClassVar[str] = "session_message"

    type: Literal["session_message"] = "session_message"
    text: str | None = None
    content: list[ContentSegment] | None = None

    def prompt_text(self) -> str:
        if self.text:
            return self.text
        return extract_text(self.content)


class UnknownFrame(Frame):
    """A well-formed frame whose type this process does not accept."""

    frame_type: ClassVar[str] = "unknown"

    type: str
    payload: dict[str, Any]


InboundFrame: TypeAlias = ProcessStart | SessionMessage | UnknownFrame

_INBOUND_TYPES: dict[str, type[Frame]] = {
    ProcessStart.frame_type: ProcessStart,
    SessionMessage.frame_type: SessionMessage,
}


def parse_inbound_frame(line: str) -> InboundFrame:
    """Parse one inbound line.

    Raises:
        ProtocolError: If the line is not a JSON object or a known frame
            carries fields of the wrong shape.
    """
    try:
        payload = json.loads(line)
    except json.JSONDecodeError as exc:
        raise ProtocolError(f"invalid JSON frame: {exc.msg}") from exc
    if not isinstance(payload, dict):
        raise ProtocolError("frame must be a JSON object")

    frame_type = payload.get("type")
    model = _INBOUND_TYPES.get(frame_type) if isinstance(frame_type, str) else None
    if model is None:
        return UnknownFrame(type=str(frame_type), payload=payload)
    try:
        return model.model_validate(payload)  # type: ignore[return-value]
    except ValidationError as exc:
        raise ProtocolError(f"malformed {frame_type} frame: {exc.error_count()} error(s)") from exc


# Outbound


class SessionMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    duration_ms: int = 0
    duration_api_ms: int = 0
    total_cost_usd: float = 0.0
    num_turns: int = 0

    @field_validator("duration_ms", "duration_api_ms", "total_cost_usd", "num_turns", mode="before")
    @classmethod
    def _null_as_zero(cls, value: object) -> object:
        return 0 if value is None else value


class ProcessReady(Frame):
    frame_type: ClassVar[str] = "process_ready"

    type: Literal["process_ready"] = "process_ready"
    session_id: str = PENDING_SESSION_ID


class SessionStarted(Frame):
    frame_type: ClassVar[str] = "session_started"

    type: Literal["session_started"] = "session_started"
    session_id: str


class SessionComplete(Frame):
    frame_type: ClassVar[str] = "session_complete"

    type: Literal["session_complete"] = "session_complete"
    session_id: str | None = None
    result: SessionMetrics = SessionMetrics()


class ProcessError(Frame):
    frame_type: ClassVar[str] = "process_error"

    type: Literal["process_error"] = "process_error"
    message: str


class ProcessStopped(Frame):
    frame_type: ClassVar[str] = "process_stopped"

    type: Literal["process_stopped"] = "process_stopped"
