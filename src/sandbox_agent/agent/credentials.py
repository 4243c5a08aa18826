"""Startup diagnostics for the agent CLI credentials."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

CREDENTIALS_RELATIVE_PATH = Path(".claude") / ".credentials.json"


@dataclass(frozen=True)
class CredentialsStatus:
    path: Path
    exists: bool
    expires_at_ms: int | None = None

    @property
    def expired(self) -> bool | None:
        if self.expires_at_ms is None:
            return None
        return time.time() * 1000 > self.expires_at_ms


def inspect_credentials(home: Path) -> CredentialsStatus:
    """Report whether the OAuth credentials file exists and when it expires."""
    path = home / CREDENTIALS_RELATIVE_PATH
    if not path.is_file():
        return CredentialsStatus(path=path, exists=False)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.debug("credentials.unreadable path={} error={!r}", path, exc)
        return CredentialsStatus(path=path, exists=True)
    oauth = data.get("claudeAiOauth") if isinstance(data, dict) else None
    expires_at = oauth.get("expiresAt") if isinstance(oauth, dict) else None
    if not isinstance(expires_at, int | float):
        return CredentialsStatus(path=path, exists=True)
    return CredentialsStatus(path=path, exists=True, expires_at_ms=int(expires_at))


def log_credentials_status(home: Path) -> CredentialsStatus:
    status = inspect_credentials(home)
    logger.debug(
        "credentials.check path={} exists={} expires_at_ms={} expired={}",
        status.path,
        status.exists,
        status.expires_at_ms,
        status.expired,
    )
    return status
