"""Event store protocol.

The store is the single source of truth for event state. It is a dumb,
durable, deduplicating ledger: it never interprets payloads, and it is the
only place status transitions are serialized.
"""

from datetime import timedelta
from typing import Any, Protocol

from menuvo_worker.core.event import EventRecord, IngestMetadata, IngestResult, ProcessingStatus


class EventStore(Protocol):
    """Protocol defining the interface for event ledgers.

    Status mutators return True when the transition was applied and False
    when the record is missing or already terminal (PROCESSED / FAILED).
    """

    async def ingest(
        self,
        event_id: str,
        event_type: str,
        payload: dict[str, Any],
        metadata: IngestMetadata | None = None,
        queue_name: str | None = None,
    ) -> IngestResult:
        """Insert the record if absent, atomically.

        Returns:
            IngestResult with ``is_new`` True only for the call that created it.
        """
        ...

    async def get_by_id(self, event_id: str) -> EventRecord | None: ...

    async def mark_processing(self, event_id: str) -> bool: ...

    async def mark_pending(self, event_id: str) -> bool: ...

    async def mark_processed(self, event_id: str) -> bool: ...

    async def mark_failed(self, event_id: str, error: str | None = None) -> bool: ...

    async def increment_retry(self, event_id: str, error: str | None = None) -> int:
        """Increment the retry counter and return the new value.

        Raises:
            KeyError: If the record does not exist.
        """
        ...

    async def count_by_status(self, status: ProcessingStatus) -> int: ...

    async def list_by_status(
        self,
        status: ProcessingStatus,
        older_than: timedelta | None = None,
        limit: int = 100,
    ) -> list[EventRecord]:
        """Return up to ``limit`` records in ``status``, oldest first.

        Args:
            status: Status to filter on.
            older_than: Only include records received at least this long ago.
            limit: Maximum number of records returned.
        """
        ...

    async def close(self) -> None: ...
