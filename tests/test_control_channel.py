from __future__ import annotations

import asyncio
import json

import pytest

from sandbox_agent.errors import ProtocolError
from sandbox_agent.protocol.channel import ControlChannel
from sandbox_agent.protocol.frames import ProcessReady, ProcessStart, SessionMessage


@pytest.mark.asyncio
async def test_lines_buffered_before_read_come_out_in_order() -> None:
    channel = ControlChannel()
    for line in ("a", "b", "c"):
        channel.feed_line(line)

    assert channel.buffered == 3
    assert [await channel.read_line() for _ in range(3)] == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_readers_waiting_before_arrival_are_served_in_order() -> None:
    channel = ControlChannel()
    first = asyncio.create_task(channel.read_line())
    second = asyncio.create_task(channel.read_line())
    await asyncio.sleep(0)

    channel.feed_line("one")
    channel.feed_line("two")

    assert await first == "one"
    assert await second == "two"
    assert channel.buffered == 0


@pytest.mark.asyncio
async def test_interleaved_arrivals_and_reads_preserve_fifo() -> None:
    channel = ControlChannel()
    received: list[str | None] = []

    channel.feed_line("1")
    waiting = asyncio.create_task(channel.read_line())
    await asyncio.sleep(0)
    received.append(await waiting)

    reader = asyncio.create_task(channel.read_line())
    await asyncio.sleep(0)
    channel.feed_line("2")
    channel.feed_line("3")
    received.append(await reader)
    received.append(await channel.read_line())

    assert received == ["1", "2", "3"]


@pytest.mark.asyncio
async def test_close_resolves_waiters_with_end_marker() -> None:
    channel = ControlChannel()
    waiters = [asyncio.create_task(channel.read_line()) for _ in range(2)]
    await asyncio.sleep(0)

    channel.close()

    assert await asyncio.gather(*waiters) == [None, None]


@pytest.mark.asyncio
async def test_buffered_lines_survive_close_then_end_marker() -> None:
    channel = ControlChannel()
    channel.feed_line("last")
    channel.close()

    assert await channel.read_line() == "last"
    assert await channel.read_line() is None
    assert await channel.read_frame() is None


@pytest.mark.asyncio
async def test_cancelled_reader_does_not_swallow_a_line() -> None:
    channel = ControlChannel()
    abandoned = asyncio.create_task(channel.read_line())
    await asyncio.sleep(0)
    abandoned.cancel()
    await asyncio.sleep(0)

    channel.feed_line("kept")

    assert await channel.read_line() == "kept"


@pytest.mark.asyncio
async def test_read_frame_parses_and_rejects() -> None:
    channel = ControlChannel()
    channel.feed_line('{"type": "process_start", "session_id": "s1"}')
    channel.feed_line('{"type": "session_message", "text": "hi"}')
    channel.feed_line("not json")

    start = await channel.read_frame()
    message = await channel.read_frame()

    assert isinstance(start, ProcessStart) and start.session_id == "s1"
    assert isinstance(message, SessionMessage) and message.prompt_text() == "hi"
    with pytest.raises(ProtocolError):
        await channel.read_frame()


def test_emit_writes_one_json_line(sink) -> None:
    channel = ControlChannel(sink)

    channel.emit(ProcessReady())

    assert sink.getvalue().endswith("\n")
    assert json.loads(sink.getvalue()) == {"type": "process_ready", "session_id": "pending"}


@pytest.mark.asyncio
async def test_pump_feeds_lines_and_closes_on_eof() -> None:
    channel = ControlChannel()
    reader = asyncio.StreamReader()
    reader.feed_data(b'{"type":"process_start"}\r\nsecond\n')
    reader.feed_eof()

    await channel.pump(reader)

    assert channel.closed
    assert await channel.read_line() == '{"type":"process_start"}'
    assert await channel.read_line() == "second"
    assert await channel.read_line() is None


def test_unread_lines_are_bounded() -> None:
    channel = ControlChannel(max_buffered=2)
    channel.feed_line("a")
    channel.feed_line("b")

    with pytest.raises(ProtocolError, match="buffer full"):
        channel.feed_line("c")
    assert channel.buffered == 2


@pytest.mark.asyncio
async def test_pump_stops_and_closes_on_overflow() -> None:
    reader = asyncio.StreamReader()
    reader.feed_data(b"one\ntwo\nthree\n")
    channel = ControlChannel(max_buffered=2)

    await channel.pump(reader)

    assert channel.closed
    assert [await channel.read_line() for _ in range(3)] == ["one", "two", None]
