"""Flush durable state and report the terminal session status, once."""

from __future__ import annotations

import asyncio
import shlex
from collections.abc import Awaitable, Callable
from typing import Literal, TypeAlias

import httpx
from loguru import logger

from sandbox_agent.config import Settings

NotifyStatus: TypeAlias = Literal["completed", "error"]
Flusher: TypeAlias = Callable[[], Awaitable[None]]


def command_flusher(command: str, *, timeout_seconds: float = 10.0) -> Flusher:
    """Build a flusher that runs ``command`` and fails on a non-zero exit."""

    async def flush() -> None:
        process = await asyncio.create_subprocess_exec(
            *shlex.split(command),
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            async with asyncio.timeout(timeout_seconds):
                _, stderr_bytes = await process.communicate()
        except TimeoutError:
            process.kill()
            await process.wait()
            raise
        if process.returncode != 0:
            message = (stderr_bytes or b"").decode("utf-8", errors="replace").strip()
            raise RuntimeError(f"exit={process.returncode}: {message}")

    return flush


class CompletionNotifier:
    """Make session output durable, then tell the orchestrator, at most once.

    Both steps are best effort. A failed flush is logged and the notification
    still goes out; a failed notification is logged and never retried, the
    orchestrator is expected to notice a silent session on its own.
    """

    def __init__(
        self,
        callback_url: str | None,
        *,
        flusher: Flusher | None = None,
        timeout_seconds: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.callback_url = callback_url
        self._flusher = flusher
        self._timeout_seconds = timeout_seconds
        self._client = client
        self._notified = False

    @classmethod
    def from_settings(cls, settings: Settings) -> CompletionNotifier:
        return cls(
            settings.callback_url,
            flusher=command_flusher(settings.flush_command, timeout_seconds=settings.flush_timeout_seconds),
            timeout_seconds=settings.callback_timeout_seconds,
        )

    @property
    def notified(self) -> bool:
        return self._notified

    async def notify(
        self,
        status: NotifyStatus,
        session_id: str | None = None,
        error_message: str | None = None,
    ) -> None:
        if self._notified:
            logger.warning("notifier.duplicate status={} session_id={}", status, session_id)
            return
        self._notified = True

        await self._flush()

        if not self.callback_url:
            logger.warning("notifier.skip reason=no_callback_url status={}", status)
            return

        body = {"status": status, "sessionId": session_id, "errorMessage": error_message}
        try:
            response = await self._post(self.callback_url, body)
        except httpx.HTTPError as exc:
            logger.error("notifier.callback.error status={} error={!r}", status, exc)
            return
        if response.is_success:
            logger.info("notifier.callback.sent status={} session_id={}", status, session_id)
        else:
            logger.error("notifier.callback.failed http_status={}", response.status_code)

    async def _flush(self) -> None:
        if self._flusher is None:
            return
        logger.debug("notifier.flush.start")
        try:
            await self._flusher()
        except Exception as exc:
            logger.warning("notifier.flush.failed error={!r}", exc)
            return
        logger.debug("notifier.flush.done")

    async def _post(self, url: str, body: dict[str, str | None]) -> httpx.Response:
        payload = {key: value for key, value in body.items() if value is not None}
        if self._client is not None:
            return await self._client.post(url, json=payload, timeout=self._timeout_seconds)
        async with httpx.AsyncClient(timeout=httpx.Timeout(self._timeout_seconds)) as client:
            return await client.post(url, json=payload)
