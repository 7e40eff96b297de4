"""Bounded event channel shared by the speech bridges.

Platform callbacks only ever push events into the channel. The owning bridge
is the single consumer: it applies events to its own state and then publishes
one immutable snapshot to its observer.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Generic, List, Optional, TypeVar

E = TypeVar("E")
S = TypeVar("S")


class EventChannel(Generic[E]):
    def __init__(self, maxsize: int = 64):
        self._queue: "asyncio.Queue[E]" = asyncio.Queue(maxsize=max(1, maxsize))
        self.dropped = 0

    def push(self, event: E) -> None:
        # oldest event is dropped when the consumer falls behind
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(event)

    def drain(self) -> List[E]:
        events: List[E] = []
        while not self._queue.empty():
            events.append(self._queue.get_nowait())
        return events

    async def get(self) -> E:
        return await self._queue.get()

    def __len__(self) -> int:
        return self._queue.qsize()


class ChannelBridge(Generic[E, S]):
    """Common consumer loop; subclasses implement ``_apply`` and ``snapshot``."""

    def __init__(self, channel_size: int = 64):
        self._channel: EventChannel[E] = EventChannel(channel_size)
        self._observer: Optional[Callable[[S], None]] = None

    @property
    def snapshot(self) -> S:
        raise NotImplementedError

    def observe(self, observer: Optional[Callable[[S], None]]) -> None:
        """Register the single observer (replaces any previous one)."""

        self._observer = observer

    def pump(self) -> int:
        """Apply every queued event, then publish once. Returns the event count."""

        events = self._channel.drain()
        for event in events:
            self._apply(event)
        if events:
            self._publish()
        return len(events)

    async def run(self) -> None:
        while True:
            event = await self._channel.get()
            self._apply(event)
            self._publish()

    def _apply(self, event: E) -> None:
        raise NotImplementedError

    def _publish(self) -> None:
        if self._observer is not None:
            self._observer(self.snapshot)
