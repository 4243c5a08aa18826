"""Wire the session runner to the process's standard streams."""

from __future__ import annotations

import asyncio
import sys
from contextlib import suppress
from pathlib import Path
from typing import TextIO

from loguru import logger

from sandbox_agent.agent.credentials import log_credentials_status
from sandbox_agent.agent.engine import ExecutionEngine, ProcessEngine
from sandbox_agent.agent.notifier import CompletionNotifier
from sandbox_agent.agent.runner import Session, SessionRunner
from sandbox_agent.config import Settings
from sandbox_agent.protocol.channel import ControlChannel, open_stdin_reader


async def serve_session(
    settings: Settings,
    reader: asyncio.StreamReader,
    output: TextIO,
    *,
    engine: ExecutionEngine | None = None,
    notifier: CompletionNotifier | None = None,
) -> Session:
    """Run one session with frames read from ``reader`` and written to ``output``."""
    logger.debug(
        "agent.start workspace={} resume={} callback_url={}",
        settings.workspace_dir,
        settings.resume_session_id,
        settings.callback_url,
    )
    log_credentials_status(Path.home())

    channel = ControlChannel(output)
    pump = asyncio.create_task(channel.pump(reader))
    runner = SessionRunner(
        channel,
        engine if engine is not None else ProcessEngine.from_settings(settings),
        notifier if notifier is not None else CompletionNotifier.from_settings(settings),
        resume_session_id=settings.resume_session_id,
    )
    try:
        return await runner.run()
    finally:
        pump.cancel()
        with suppress(asyncio.CancelledError):
            await pump


async def serve_stdio(settings: Settings) -> Session:
    reader = await open_stdin_reader()
    return await serve_session(settings, reader, sys.stdout)
