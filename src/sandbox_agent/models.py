"""Conversation data model shared by the orchestrator client and the log reader."""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal, TypeAlias

from pydantic import BaseModel, ConfigDict, Field

MessageRole: TypeAlias = Literal["user", "assistant", "system"]
ConversationStatus: TypeAlias = Literal["idle", "running", "completed", "error"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "error"})


class ContentSegment(BaseModel):
    """One block of message content (text, tool_use, tool_result, ...)."""

    model_config = ConfigDict(extra="allow", frozen=True)

    type: str
    text: str | None = None


class MessageBody(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    role: str | None = None
    content: str | list[ContentSegment] | None = None


def extract_text(content: str | Sequence[ContentSegment | dict[str, Any]] | None) -> str:
    """Flatten message content into plain text.

    A string is returned unchanged. For a segment list, non-empty ``text``
    segments are joined in order with newlines.
    """
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    parts: list[str] = []
    for segment in content:
        if isinstance(segment, dict):
            kind, text = segment.get("type"), segment.get("text")
        else:
            kind, text = segment.type, segment.text
        if kind == "text" and text:
            parts.append(text)
    return "\n".join(parts)


class ConfirmedMessage(BaseModel):
    """An entry of the durable conversation log. Never mutated by consumers."""

    model_config = ConfigDict(extra="allow", frozen=True, populate_by_name=True)

    type: MessageRole
    uuid: str
    parent_uuid: str | None = Field(default=None, alias="parentUuid")
    session_id: str = Field(default="", alias="sessionId")
    timestamp: str = ""
    message: MessageBody | None = None

    @property
    def role(self) -> MessageRole:
        return self.type

    @property
    def text(self) -> str:
        if self.message is None:
            return ""
        return extract_text(self.message.content)


class ConversationState(BaseModel):
    """One fetch of the orchestrator read endpoint. Replaced wholesale per poll."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    status: ConversationStatus = "idle"
    messages: list[ConfirmedMessage] = Field(default_factory=list)
    error_message: str | None = Field(default=None, alias="errorMessage")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass(frozen=True)
class PendingMessage:
    """Client-local optimistic entry awaiting confirmation."""

    id: str
    text: str
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    @classmethod
    def create(cls, text: str) -> PendingMessage:
        return cls(id=f"pending-{uuid.uuid4().hex[:12]}", text=text)

    def as_confirmed(self, parent_uuid: str | None) -> ConfirmedMessage:
        """Render as a user entry for display next to confirmed messages."""
        return ConfirmedMessage(
            type="user",
            uuid=self.id,
            parent_uuid=parent_uuid,
            timestamp=self.timestamp,
            message=MessageBody(role="user", content=self.text),
        )
