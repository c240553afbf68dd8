"""
Bounded channel between the provider transport and the translate loop.

The producer (transport) sends chunks; the consumer iterates them. Closing the
channel is how a request is cancelled: the consumer stops immediately and any
chunk the producer sends afterwards is dropped.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, AsyncIterator

from ..domain.errors import AgentCoreError

_END_OF_STREAM = object()


@dataclass(frozen=True)
class TransportFailure:
    """Sent through the channel when the transport raises."""

    error: AgentCoreError


class StreamChannel:
    """Single-producer, single-consumer bounded channel.

    Usage:
        channel = StreamChannel(maxsize=64)

        # producer
        await channel.send(chunk)
        channel.finish()

        # consumer
        async for chunk in channel:
            ...

        # cancellation (from anywhere)
        channel.close()
    """

    def __init__(self, maxsize: int = 64):
        # Capacity is enforced by the semaphore so the end marker always fits
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._slots = asyncio.Semaphore(maxsize)
        self._closed = False
        self._finished = False

    @property
    def closed(self) -> bool:
        """True once the consumer side has been closed (cancellation)."""
        return self._closed

    @property
    def finished(self) -> bool:
        """True once the producer signalled the end of the stream."""
        return self._finished

    async def send(self, item: Any) -> bool:
        """Send a chunk, waiting while the channel is full.

        Returns:
            False if the channel is closed and the chunk was dropped
        """
        if self._closed or self._finished:
            return False
        await self._slots.acquire()
        if self._closed:
            return False
        self._queue.put_nowait(item)
        return True

    def finish(self) -> None:
        """Mark the end of the stream (producer side)."""
        if self._finished:
            return
        self._finished = True
        self._queue.put_nowait(_END_OF_STREAM)

    def close(self) -> None:
        """Close the channel (consumer side). Never waits on the producer."""
        if self._closed:
            return
        self._closed = True
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_END_OF_STREAM)
        # Wake a producer blocked on a full channel
        self._slots.release()

    async def __aiter__(self) -> AsyncIterator[Any]:
        while not self._closed:
            item = await self._queue.get()
            if item is _END_OF_STREAM or self._closed:
                return
            self._slots.release()
            yield item
