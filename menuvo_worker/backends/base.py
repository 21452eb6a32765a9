"""Queue transport protocol.

The transport is intentionally dumb: it carries event ids, never payloads.
Authoritative state lives in the event store, so a crashed consumer loses no
data and any id can be safely re-delivered.
"""

from dataclasses import dataclass
from typing import Any, Protocol

DEAD_LETTER_SUFFIX = ":dead"


def dead_letter_name(queue_name: str) -> str:
    """Derive the companion dead-letter list name for a queue."""
    return f"{queue_name}{DEAD_LETTER_SUFFIX}"


def check_poll_timeout(timeout: float | None) -> None:
    """Reject pop timeouts that only None may express.

    BRPOP treats 0 as "block forever" while an asyncio wait treats it as
    "return now", so zero and negative values are refused everywhere.
    """
    if timeout is not None and timeout <= 0:
        raise ValueError(f"poll timeout must be positive or None, got {timeout}")


@dataclass
class TransportHealth:
    """Health check result."""

    healthy: bool
    latency_ms: float
    details: dict[str, Any]


class QueueTransport(Protocol):
    """Protocol defining the interface for blocking list queues."""

    async def enqueue(self, queue_name: str, event_id: str) -> None:
        """Push an id onto the named queue (approximate FIFO)."""
        ...

    async def dequeue_blocking(self, queue_name: str, timeout: float | None = None) -> str | None:
        """Pop the next id, blocking until one is available.

        Args:
            queue_name: Queue to pop from.
            timeout: Maximum seconds to wait. None blocks forever; zero and
                negative values raise ValueError.

        Returns:
            The next id, or None if the timeout elapsed.
        """
        ...

    async def dead_letter(self, queue_name: str, event_id: str) -> None:
        """Push an id onto the queue's dead-letter list."""
        ...

    async def depth(self, queue_name: str) -> int: ...

    async def dead_letter_depth(self, queue_name: str) -> int: ...

    async def list_dead_letters(self, queue_name: str, limit: int = 100) -> list[str]: ...

    async def health(self, queue_names: list[str] | None = None) -> TransportHealth: ...

    async def close(self) -> None: ...
