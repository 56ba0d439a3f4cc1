from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Literal, Optional

from loguru import logger

from ..errors import ChannelClosedError, QueueFullError
from ..models import Mutation

OverflowStrategy = Literal["block", "drop_oldest", "error"]


class MutationChannel:
    """Bounded FIFO hand-off from the write path to the sync worker.

    Any number of producers may put(); exactly one consumer should get().
    close() is terminal: queued mutations are still handed out, after which
    get() raises ChannelClosedError instead of blocking.
    """

    def __init__(
        self,
        capacity: int = 200,
        *,
        overflow_strategy: OverflowStrategy = "block",
        drop_callback: Optional[Callable[[Mutation], Awaitable[None]]] = None,
    ):
        if capacity <= 0:
            raise ValueError("capacity must be > 0")

        self._capacity = capacity
        self._q: asyncio.Queue[Mutation] = asyncio.Queue(maxsize=capacity)
        self._overflow = overflow_strategy
        self._drop_cb = drop_callback
        self._closed = asyncio.Event()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def size(self) -> int:
        return self._q.qsize()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def close(self) -> None:
        """Stop accepting mutations and wake a blocked consumer."""
        if not self._closed.is_set():
            self._closed.set()
            logger.debug(f"Mutation channel closed with {self.size} queued")

    async def put(self, mutation: Mutation) -> None:
        """Put a mutation according to the overflow strategy."""
        if self.closed:
            raise ChannelClosedError("mutation channel is closed")

        if self._overflow == "block":
            await self._q.put(mutation)
            return

        if self._overflow == "error":
            if self._q.full():
                raise QueueFullError(f"mutation channel is full ({self._capacity})")
            self._q.put_nowait(mutation)
            return

        # drop_oldest; another producer may refill the slot while the callback runs
        while self._q.full():
            oldest = self._q.get_nowait()
            logger.warning(f"Mutation channel full, dropping oldest mutation id={oldest.id}")
            if self._drop_cb:
                await self._drop_cb(oldest)
        self._q.put_nowait(mutation)

    async def get(self) -> Mutation:
        """Wait for the next mutation; raise ChannelClosedError once drained."""
        if not self._q.empty():
            return self._q.get_nowait()
        if self.closed:
            raise ChannelClosedError("mutation channel is closed and drained")

        getter = asyncio.ensure_future(self._q.get())
        closer = asyncio.ensure_future(self._closed.wait())
        try:
            await asyncio.wait({getter, closer}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            closer.cancel()
            if not getter.done():
                getter.cancel()
                # let the cancellation settle so a racing put is not lost
                await asyncio.wait({getter})

        if not getter.cancelled():
            return getter.result()
        if not self._q.empty():
            return self._q.get_nowait()
        raise ChannelClosedError("mutation channel is closed and drained")
