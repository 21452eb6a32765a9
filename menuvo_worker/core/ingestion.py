"""Ingestion: the synchronous entry point that records and schedules events.

Ingestion is idempotent on the event id. Only the call that creates the record
enqueues work; replays return ``is_new=False`` without side effects. The call
returns as soon as the id is on the queue, independent of processing.
"""

import asyncio
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from menuvo_worker.core.event import IngestMetadata, IngestResult
from menuvo_worker.core.logging import get_logger

if TYPE_CHECKING:
    from menuvo_worker.backends.base import QueueTransport
    from menuvo_worker.stores.base import EventStore

DEFAULT_INGEST_TIMEOUT = 5.0


class IngestionError(Exception):
    """Raised when an event cannot be recorded or scheduled."""

    def __init__(self, message: str, event_id: str | None = None):
        self.event_id = event_id
        super().__init__(message)


class IngestionTimeoutError(IngestionError):
    """Raised when ingestion exceeds its deadline."""


class InvalidEventError(IngestionError):
    """Raised when the event shape is rejected before any store write."""


class Ingestor:
    """Records events for one job class and enqueues the new ones."""

    def __init__(
        self,
        store: "EventStore",
        transport: "QueueTransport",
        queue_name: str,
        timeout: float | None = DEFAULT_INGEST_TIMEOUT,
    ) -> None:
        self.store = store
        self.transport = transport
        self.queue_name = queue_name
        self.timeout = timeout
        self._log = get_logger("ingestion")

    async def ingest(
        self,
        event_id: str,
        event_type: str,
        payload: dict[str, Any],
        metadata: IngestMetadata | None = None,
    ) -> IngestResult:
        """Store the event if unseen and enqueue it.

        Raises:
            InvalidEventError: If id, type or payload fail validation.
            IngestionTimeoutError: If the store write or enqueue exceeds the timeout.
            IngestionError: If the record was written but could not be enqueued.
                The record stays PENDING until the stale-event sweep redispatches it.
        """
        try:
            if self.timeout is None:
                return await self._ingest(event_id, event_type, payload, metadata)
            return await asyncio.wait_for(
                self._ingest(event_id, event_type, payload, metadata), timeout=self.timeout
            )
        except TimeoutError:
            self._log.error(
                f"Ingestion of {event_id} timed out after {self.timeout}s",
                extra={"event_id": event_id, "event_type": event_type, "queue": self.queue_name},
            )
            raise IngestionTimeoutError(
                f"ingestion of {event_id} timed out after {self.timeout}s", event_id=event_id
            )

    async def _ingest(
        self,
        event_id: str,
        event_type: str,
        payload: dict[str, Any],
        metadata: IngestMetadata | None,
    ) -> IngestResult:
        try:
            result = await self.store.ingest(
                event_id, event_type, payload, metadata, queue_name=self.queue_name
            )
        except ValidationError as e:
            raise InvalidEventError(
                f"rejected event {event_id!r}: {e.error_count()} validation error(s)",
                event_id=event_id,
            ) from e

        if not result.is_new:
            self._log.debug(
                f"Event {result.event_id} already known (duplicate delivery)",
                extra={"event_id": result.event_id, "event_type": event_type, "queue": self.queue_name},
            )
            return result

        try:
            await self.transport.enqueue(self.queue_name, result.event_id)
        except Exception as e:
            self._log.error(
                f"Stored {result.event_id} but enqueue failed; it stays PENDING: {e}",
                extra={
                    "event_id": result.event_id,
                    "event_type": event_type,
                    "queue": self.queue_name,
                    "error": str(e),
                },
            )
            raise IngestionError(
                f"event {result.event_id} stored but not enqueued: {e}", event_id=result.event_id
            ) from e

        self._log.info(
            f"Event {result.event_id} stored and enqueued",
            extra={"event_id": result.event_id, "event_type": event_type, "queue": self.queue_name},
        )
        return result
