"""
Bounded fan-out channel for market-changed notifications.

publish() never blocks: the channel keeps the last `capacity` messages in a
ring buffer and overwrites the oldest. Each subscriber reads at its own pace.
A subscriber that falls behind the buffer gets Lagged(missed) from recv() and
resumes at the oldest message still buffered.

Single event loop only: publish() and recv() must run on the same loop.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CAPACITY = 100


class Lagged(Exception):
    """Raised by recv() when the subscriber missed messages."""

    def __init__(self, missed: int):
        super().__init__(f"subscriber lagged behind by {missed} messages")
        self.missed = missed


class ChannelClosed(Exception):
    """Raised by recv() once the channel is closed and drained."""
    pass


class UpdateChannel(Generic[T]):
    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._buffer: deque[T] = deque(maxlen=capacity)
        self._next_seq = 0  # sequence number of the next published message
        self._closed = False
        self._subscribers: set[Subscription[T]] = set()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def _oldest_seq(self) -> int:
        return self._next_seq - len(self._buffer)

    def publish(self, item: T) -> int:
        """
        Append item and wake all subscribers.
        Returns the number of live subscribers that will see it.
        """
        if self._closed:
            raise ChannelClosed("publish on closed channel")
        self._buffer.append(item)
        self._next_seq += 1
        for sub in self._subscribers:
            sub._wakeup.set()
        return len(self._subscribers)

    def subscribe(self) -> Subscription[T]:
        """New subscriber starting after the latest published message."""
        sub = Subscription(self, self._next_seq)
        self._subscribers.add(sub)
        return sub

    def close(self) -> None:
        """Stop the channel. Subscribers drain what is buffered, then get ChannelClosed."""
        self._closed = True
        for sub in self._subscribers:
            sub._wakeup.set()


class Subscription(Generic[T]):
    def __init__(self, channel: UpdateChannel[T], start_seq: int):
        self._channel = channel
        self._next = start_seq
        self._wakeup = asyncio.Event()

    def try_recv(self) -> T | None:
        """Non-blocking read. Returns None when nothing is pending."""
        ch = self._channel
        oldest = ch._oldest_seq
        if self._next < oldest:
            missed = oldest - self._next
            self._next = oldest
            raise Lagged(missed)
        if self._next < ch._next_seq:
            item = ch._buffer[self._next - oldest]
            self._next += 1
            return item
        if ch._closed:
            raise ChannelClosed()
        return None

    async def recv(self) -> T:
        while True:
            # Clear before checking so a publish between check and wait is not lost.
            self._wakeup.clear()
            item = self.try_recv()
            if item is not None:
                return item
            await self._wakeup.wait()

    @property
    def pending(self) -> int:
        """Messages buffered but not yet read (capped at channel capacity)."""
        ch = self._channel
        return ch._next_seq - max(self._next, ch._oldest_seq)

    def unsubscribe(self) -> None:
        self._channel._subscribers.discard(self)
