"""One-shot async sequence used to hand a user turn to a provider."""

from __future__ import annotations

import asyncio
from collections import deque
from typing import AsyncIterator, Deque, Generic, Optional, TypeVar

T = TypeVar("T")


class AsyncChannel(Generic[T]):
    """Single-consumer async sequence that can be iterated exactly once.

    ``enqueue`` hands a value to a pending reader or buffers it. ``close`` ends
    the sequence; buffered values are still delivered before iteration stops.
    The provider reads the channel's end as "end of user turn".
    """

    def __init__(self) -> None:
        self._queue: Deque[T] = deque()
        self._waiter: Optional[asyncio.Future[bool]] = None
        self._closed = False
        self._started = False

    @property
    def closed(self) -> bool:
        return self._closed

    def enqueue(self, value: T) -> None:
        if self._closed:
            raise RuntimeError("Cannot enqueue into a closed channel")
        self._queue.append(value)
        self._wake()

    def close(self) -> None:
        self._closed = True
        self._wake()

    def _wake(self) -> None:
        waiter = self._waiter
        if waiter is not None and not waiter.done():
            waiter.set_result(True)
        self._waiter = None

    def __aiter__(self) -> AsyncIterator[T]:
        if self._started:
            raise RuntimeError("Stream can only be iterated once")
        self._started = True
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[T]:
        while True:
            if self._queue:
                yield self._queue.popleft()
                continue
            if self._closed:
                return
            self._waiter = asyncio.get_running_loop().create_future()
            await self._waiter


__all__ = ["AsyncChannel"]
