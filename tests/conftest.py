from __future__ import annotations

import io
import json
from pathlib import Path
from typing import Any

import pytest

from sandbox_agent.config import Settings

_SANDBOX_ENV = ("WORKSPACE_DIR", "CALLBACK_URL", "RESUME_SESSION_ID")


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for name in _SANDBOX_ENV:
        monkeypatch.delenv(name, raising=False)
        monkeypatch.delenv(f"SANDBOX_AGENT_{name}", raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(workspace_dir=tmp_path, flush_command="true")


class FrameSink(io.StringIO):
    """Captures emitted protocol lines."""

    def frames(self) -> list[dict[str, Any]]:
        return [json.loads(line) for line in self.getvalue().splitlines() if line.strip()]

    def types(self) -> list[str]:
        return [frame["type"] for frame in self.frames()]


@pytest.fixture
def sink() -> FrameSink:
    return FrameSink()
