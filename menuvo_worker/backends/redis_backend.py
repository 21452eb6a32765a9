"""Redis list queue transport.

Features:
- LPUSH on enqueue, BRPOP on the consumer side (approximate FIFO)
- Companion dead-letter list per queue (``{queue}:dead``)
- Shared connection pooling with automatic reconnection
- Health checks reporting queue and dead-letter depths
"""

import time
from dataclasses import dataclass

from menuvo_worker.backends.base import TransportHealth, check_poll_timeout, dead_letter_name
from menuvo_worker.backends.connection import RedisConnection, as_connection
from menuvo_worker.core.logging import get_logger

logger = get_logger("redis")


@dataclass
class TransportMetrics:
    """Redis transport metrics."""

    ids_enqueued: int = 0
    ids_dequeued: int = 0
    ids_dead_lettered: int = 0


class RedisTransport:
    """Blocking list queues on Redis."""

    def __init__(self, connection: RedisConnection | str, pool_size: int = 10) -> None:
        """Initialize Redis transport.

        Args:
            connection: A shared RedisConnection or a Redis URL.
            pool_size: Connection pool size when a URL is given.
        """
        self._conn = as_connection(connection, pool_size=pool_size)
        self._metrics = TransportMetrics()

    @property
    def metrics(self) -> TransportMetrics:
        return self._metrics

    async def enqueue(self, queue_name: str, event_id: str) -> None:
        redis = await self._conn.get_client()
        await redis.lpush(queue_name, event_id)
        self._metrics.ids_enqueued += 1
        logger.debug(f"Enqueued {event_id} to {queue_name}")

    async def dequeue_blocking(self, queue_name: str, timeout: float | None = None) -> str | None:
        """Pop the next id with BRPOP.

        Only a timeout of None maps to BRPOP's 0, which blocks forever. A
        broken socket surfaces as an error here and the next ``get_client``
        call replaces the client after its ping fails.

        Raises:
            ValueError: If ``timeout`` is zero or negative.
        """
        check_poll_timeout(timeout)
        redis = await self._conn.get_client()
        response = await redis.brpop([queue_name], timeout=0 if timeout is None else timeout)

        if not response:
            return None

        _, event_id = response
        self._metrics.ids_dequeued += 1
        return event_id

    async def dead_letter(self, queue_name: str, event_id: str) -> None:
        redis = await self._conn.get_client()
        dead = dead_letter_name(queue_name)
        await redis.lpush(dead, event_id)
        self._metrics.ids_dead_lettered += 1
        logger.warning(f"Moved {event_id} to {dead}")

    async def depth(self, queue_name: str) -> int:
        redis = await self._conn.get_client()
        return int(await redis.llen(queue_name))

    async def dead_letter_depth(self, queue_name: str) -> int:
        return await self.depth(dead_letter_name(queue_name))

    async def list_dead_letters(self, queue_name: str, limit: int = 100) -> list[str]:
        redis = await self._conn.get_client()
        return list(await redis.lrange(dead_letter_name(queue_name), 0, limit - 1))

    async def health(self, queue_names: list[str] | None = None) -> TransportHealth:
        """Check transport health."""
        start = time.monotonic()
        try:
            redis = await self._conn.get_client()
            await redis.ping()
            names = queue_names or []
            queues = {name: int(await redis.llen(name)) for name in names}
            dead = {name: int(await redis.llen(dead_letter_name(name))) for name in names}
            latency = (time.monotonic() - start) * 1000

            return TransportHealth(
                healthy=True,
                latency_ms=latency,
                details={
                    "url": self._conn.safe_url,
                    "queues": queues,
                    "dead_letters": dead,
                    "reconnections": self._conn.reconnections,
                    "metrics": {
                        "enqueued": self._metrics.ids_enqueued,
                        "dequeued": self._metrics.ids_dequeued,
                        "dead_lettered": self._metrics.ids_dead_lettered,
                    },
                },
            )
        except Exception as e:
            return TransportHealth(
                healthy=False,
                latency_ms=(time.monotonic() - start) * 1000,
                details={"error": str(e)},
            )

    async def delete_queue(self, queue_name: str) -> None:
        """Delete a queue and its dead-letter list (for testing)."""
        redis = await self._conn.get_client()
        await redis.delete(queue_name, dead_letter_name(queue_name))

    async def close(self) -> None:
        await self._conn.close()
