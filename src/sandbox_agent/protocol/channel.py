"""Line-buffered control channel over the agent process's standard streams."""

from __future__ import annotations

import asyncio
import sys
from collections import deque
from typing import TextIO

from loguru import logger

from sandbox_agent.errors import ProtocolError
from sandbox_agent.protocol.frames import Frame, InboundFrame, parse_inbound_frame

DEFAULT_MAX_BUFFERED = 64


class ControlChannel:
    """Ordered, single-consumer read/write surface for protocol frames.

    Lines that arrive before anyone asks for them are buffered; readers that
    ask before a line arrives are parked in FIFO order. Either way each line
    is handed out exactly once, in arrival order. At most ``max_buffered``
    unread lines are held.
    """

    def __init__(self, output: TextIO | None = None, *, max_buffered: int = DEFAULT_MAX_BUFFERED) -> None:
        self._output = output if output is not None else sys.stdout
        self._max_buffered = max_buffered
        self._lines: deque[str] = deque()
        self._waiters: deque[asyncio.Future[str | None]] = deque()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def buffered(self) -> int:
        return len(self._lines)

    def feed_line(self, line: str) -> None:
        if self._closed:
            logger.warning("channel.feed.after_close length={}", len(line))
            return
        while self._waiters:
            waiter = self._waiters.popleft()
            # A cancelled reader gave up its turn; hand the line to the next one.
            if not waiter.done():
                waiter.set_result(line)
                return
        if len(self._lines) >= self._max_buffered:
            raise ProtocolError(f"control channel buffer full ({self._max_buffered} unread lines)")
        self._lines.append(line)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        logger.debug("channel.closed waiters={} buffered={}", len(self._waiters), len(self._lines))
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)

    async def read_line(self) -> str | None:
        """Return the next unread line, or ``None`` once the stream is exhausted."""
        if self._lines:
            return self._lines.popleft()
        if self._closed:
            return None
        waiter: asyncio.Future[str | None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        return await waiter

    async def read_frame(self) -> InboundFrame | None:
        """Read and parse the next frame.

        Raises:
            ProtocolError: If the line does not parse as a frame.
        """
        line = await self.read_line()
        if line is None:
            return None
        return parse_inbound_frame(line)

    def emit(self, frame: Frame) -> None:
        logger.debug("channel.emit type={}", frame.frame_type)
        self._output.write(frame.to_line() + "\n")
        self._output.flush()

    async def pump(self, reader: asyncio.StreamReader) -> None:
        """Feed lines from ``reader`` until EOF, then close the channel."""
        try:
            while True:
                raw = await reader.readline()
                if not raw:
                    break
                try:
                    self.feed_line(raw.decode("utf-8", errors="replace").rstrip("\r\n"))
                except ProtocolError as exc:
                    logger.error("channel.pump.overflow error={}", exc)
                    break
        finally:
            self.close()


async def open_stdin_reader() -> asyncio.StreamReader:
    """Wrap the process stdin in an asyncio stream reader."""
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
    return reader
