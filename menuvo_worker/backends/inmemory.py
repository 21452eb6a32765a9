"""In-memory queue transport using one asyncio.Queue per queue name."""

import asyncio
from collections import defaultdict

from menuvo_worker.backends.base import TransportHealth, check_poll_timeout, dead_letter_name


class BackendFullError(Exception):
    """Raised when a bounded queue is full and cannot accept more ids."""

    pass


class InMemoryTransport:
    """Async FIFO transport using asyncio.Queue.

    This transport is suitable for development and testing. It provides
    no durability guarantees; queued ids are lost if the process terminates
    (the event store still holds the records).

    Args:
        max_size: Maximum size per queue. 0 means unbounded (default).
    """

    def __init__(self, max_size: int = 0) -> None:
        self._max_size = max_size
        self._queues: dict[str, asyncio.Queue[str]] = {}
        self._dead: dict[str, list[str]] = defaultdict(list)

    def _queue(self, queue_name: str) -> asyncio.Queue[str]:
        queue = self._queues.get(queue_name)
        if queue is None:
            queue = asyncio.Queue(maxsize=self._max_size)
            self._queues[queue_name] = queue
        return queue

    async def enqueue(self, queue_name: str, event_id: str) -> None:
        """Append an id to the named queue.

        Raises:
            BackendFullError: If the queue is full (when max_size > 0).
        """
        try:
            self._queue(queue_name).put_nowait(event_id)
        except asyncio.QueueFull:
            raise BackendFullError(
                f"Queue {queue_name!r} full (max_size={self._max_size}), cannot enqueue {event_id}"
            )

    async def dequeue_blocking(self, queue_name: str, timeout: float | None = None) -> str | None:
        check_poll_timeout(timeout)
        queue = self._queue(queue_name)
        if timeout is None:
            return await queue.get()
        try:
            return await asyncio.wait_for(queue.get(), timeout)
        except TimeoutError:
            return None

    async def dead_letter(self, queue_name: str, event_id: str) -> None:
        self._dead[dead_letter_name(queue_name)].append(event_id)

    async def depth(self, queue_name: str) -> int:
        return self._queue(queue_name).qsize()

    async def dead_letter_depth(self, queue_name: str) -> int:
        return len(self._dead.get(dead_letter_name(queue_name), []))

    async def list_dead_letters(self, queue_name: str, limit: int = 100) -> list[str]:
        # Most recent first, matching LRANGE over an LPUSH list.
        return list(reversed(self._dead.get(dead_letter_name(queue_name), [])))[:limit]

    async def health(self, queue_names: list[str] | None = None) -> TransportHealth:
        names = queue_names or list(self._queues)
        return TransportHealth(
            healthy=True,
            latency_ms=0.0,
            details={
                "queues": {name: await self.depth(name) for name in names},
                "dead_letters": {name: await self.dead_letter_depth(name) for name in names},
            },
        )

    async def close(self) -> None:
        self._queues.clear()
