"""Timer-driven conversation poller."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from contextlib import suppress
from typing import TypeAlias

from loguru import logger

from sandbox_agent.client.conversation import Conversation
from sandbox_agent.client.reconciler import PollSnapshot, Reconciler
from sandbox_agent.config import Settings
from sandbox_agent.errors import OrchestratorError
from sandbox_agent.models import ConversationState

Fetch: TypeAlias = Callable[[], Awaitable[ConversationState]]

DEFAULT_INTERVAL_SECONDS = 2.0
DEFAULT_DRAIN_LIMIT = 10
DEFAULT_REFRESH_DELAYS = (2.0, 5.0)


class Poller:
    """Fetch conversation state on a fixed period while there is work to see.

    Polls while the conversation is running. After a terminal status it keeps
    polling only while pending entries remain, for at most ``drain_limit``
    more fetches. A tick that fires while the previous fetch is still out is
    dropped, so requests never overlap.
    """

    def __init__(
        self,
        conversation: Conversation,
        fetch: Fetch,
        *,
        reconciler: Reconciler | None = None,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        drain_limit: int = DEFAULT_DRAIN_LIMIT,
        refresh_delays: Sequence[float] = DEFAULT_REFRESH_DELAYS,
        on_refresh: Callable[[], None] | None = None,
    ) -> None:
        self.conversation = conversation
        self.interval_seconds = interval_seconds
        self.drain_limit = drain_limit
        self.refresh_delays = tuple(refresh_delays)
        self.post_completion_polls = 0
        self.fetch_count = 0
        self._fetch = fetch
        self._reconciler = reconciler or Reconciler()
        self._on_refresh = on_refresh
        self._busy = False
        self._snapshot = PollSnapshot()
        self._generation = 0
        self._terminal_seen = False
        self._gap_reported = False
        self._timer: asyncio.Task[None] | None = None
        self._inflight: asyncio.Task[None] | None = None
        self._delayed_refreshes: list[asyncio.TimerHandle] = []
        self._unsubscribe = conversation.on_submit(self.reset_drain)

    @classmethod
    def for_conversation(
        cls,
        conversation: Conversation,
        settings: Settings,
        *,
        on_refresh: Callable[[], None] | None = None,
    ) -> Poller:
        async def fetch() -> ConversationState:
            if conversation.conversation_id is None:
                raise OrchestratorError("conversation has not been started")
            return await conversation.api.fetch_conversation(conversation.conversation_id)

        return cls(
            conversation,
            fetch,
            interval_seconds=settings.poll_interval_seconds,
            drain_limit=settings.drain_limit,
            on_refresh=on_refresh,
        )

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def reset_drain(self) -> None:
        self.post_completion_polls = 0
        self._terminal_seen = False
        self._gap_reported = False

    def should_poll(self) -> bool:
        state = self.conversation.state
        if state.status == "running":
            return True
        if not state.is_terminal or not self.conversation.pending:
            return False
        if self.post_completion_polls < self.drain_limit:
            return True
        if not self._gap_reported:
            self._gap_reported = True
            logger.warning(
                "poller.drain.exhausted pending={} polls={}",
                [entry.id for entry in self.conversation.pending],
                self.post_completion_polls,
            )
        return False

    def tick(self) -> asyncio.Task[None] | None:
        """Start one fetch unless the previous one is still outstanding."""
        if self._busy:
            logger.debug("poller.tick.skipped reason=busy")
            return None
        self._busy = True
        self._inflight = asyncio.create_task(self._poll_once(self._generation))
        return self._inflight

    async def _poll_once(self, generation: int) -> None:
        try:
            self.fetch_count += 1
            try:
                state = await self._fetch()
            except Exception as exc:
                logger.warning("poller.fetch.failed error={!r}", exc)
                return
            if generation != self._generation:
                logger.debug("poller.response.discarded reason=stopped")
                return
            self._apply(state)
        finally:
            self._busy = False

    def _apply(self, state: ConversationState) -> None:
        conversation = self.conversation
        conversation.state = state
        if state.is_terminal:
            self.post_completion_polls += 1

        result = self._reconciler.reconcile(conversation.pending, state, self._snapshot)
        conversation.pending = result.pending
        self._snapshot = result.snapshot
        for entry in result.retired:
            logger.debug("poller.pending.retired id={}", entry.id)

        if result.refresh:
            self._signal_refresh()
        if state.is_terminal and not self._terminal_seen:
            self._terminal_seen = True
            self._schedule_delayed_refreshes()

    def _signal_refresh(self) -> None:
        if self._on_refresh is None:
            return
        try:
            self._on_refresh()
        except Exception:
            logger.exception("poller.refresh.error")

    def _schedule_delayed_refreshes(self) -> None:
        loop = asyncio.get_running_loop()
        for delay in self.refresh_delays:
            self._delayed_refreshes.append(loop.call_later(delay, self._signal_refresh))

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            if not self.should_poll():
                break
            self.tick()
        logger.debug("poller.stopped fetches={} status={}", self.fetch_count, self.conversation.state.status)

    def start(self) -> None:
        if self.running:
            return
        self._timer = asyncio.create_task(self._run())

    async def wait(self, *, settle: bool = False) -> None:
        """Wait until polling ends by itself and the last fetch is applied.

        With ``settle`` also wait until the delayed refreshes have fired.
        """
        if self._timer is not None:
            await self._timer
        if self._inflight is not None:
            await self._inflight
        if settle and self._delayed_refreshes:
            loop = asyncio.get_running_loop()
            last = max(handle.when() for handle in self._delayed_refreshes)
            await asyncio.sleep(max(0.0, last - loop.time()))
            await asyncio.sleep(0)

    async def stop(self) -> None:
        """Cancel the timer. An in-flight fetch finishes but is not applied."""
        self._generation += 1
        for handle in self._delayed_refreshes:
            handle.cancel()
        self._delayed_refreshes.clear()
        if self._timer is not None:
            self._timer.cancel()
            with suppress(asyncio.CancelledError):
                await self._timer
            self._timer = None

    def close(self) -> None:
        self._unsubscribe()
