"""Reader for the agent's durable session log (one JSON entry per line)."""

from __future__ import annotations

import json
from pathlib import Path, PurePosixPath
from typing import Any

from loguru import logger
from pydantic import ValidationError

from sandbox_agent.models import ConfirmedMessage

SESSION_FILE_SUFFIX = ".jsonl"
DEFAULT_AGENT_WORKSPACE = "/workspace/data"
VISIBLE_ENTRY_TYPES = frozenset({"user", "assistant", "system"})

# Texts the agent CLI writes when it hits an internal stop sequence.
ARTIFACT_TEXTS = frozenset({"No response requested."})


def is_internal_artifact(entry: dict[str, Any]) -> bool:
    """Whether an assistant entry is an internal artifact users should not see."""
    message = entry.get("message")
    content = message.get("content") if isinstance(message, dict) else None
    if not content:
        return True
    if isinstance(content, str):
        return content.strip() in ARTIFACT_TEXTS
    if not isinstance(content, list):
        return False

    blocks = [block for block in content if isinstance(block, dict)]
    if any(block.get("type") == "tool_use" for block in blocks):
        return False
    text_blocks = [block for block in blocks if block.get("type") == "text"]
    if len(text_blocks) != 1:
        return False
    return str(text_blocks[0].get("text", "")).strip() in ARTIFACT_TEXTS


def parse_session_jsonl(content: str) -> list[ConfirmedMessage]:
    """Parse a session log into user-facing confirmed messages, in file order."""
    messages: list[ConfirmedMessage] = []
    for lineno, raw_line in enumerate(content.splitlines(), start=1):
        line = raw_line.strip()
        if not line:
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            logger.debug("session_log.invalid_json line={}", lineno)
            continue
        if not isinstance(entry, dict) or entry.get("type") not in VISIBLE_ENTRY_TYPES:
            continue
        if entry["type"] == "assistant" and is_internal_artifact(entry):
            continue
        try:
            messages.append(ConfirmedMessage.model_validate(entry))
        except ValidationError:
            logger.debug("session_log.invalid_entry line={}", lineno)
    return messages


def read_session_log(path: Path) -> list[ConfirmedMessage]:
    if not path.exists():
        return []
    return parse_session_jsonl(path.read_text(encoding="utf-8"))


def session_log_path(session_id: str, workspace_dir: str = DEFAULT_AGENT_WORKSPACE) -> PurePosixPath:
    """Volume-relative path of a session's log file.

    The agent CLI keys its project directory by the working directory with
    every ``/`` replaced by ``-``.
    """
    project_key = workspace_dir.rstrip("/").replace("/", "-")
    return PurePosixPath(".claude", "projects", project_key, f"{session_id}{SESSION_FILE_SUFFIX}")
