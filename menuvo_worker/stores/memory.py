"""In-memory event store for development and tests."""

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any

from menuvo_worker.core.event import (
    EventRecord,
    IngestMetadata,
    IngestResult,
    ProcessingStatus,
    can_transition,
)


class InMemoryEventStore:
    """Dict-backed event ledger.

    This store is suitable for development and testing. It provides no
    durability guarantees; records are lost if the process terminates.
    All mutations run under a single asyncio.Lock so concurrent ingestion of
    the same id creates exactly one record.
    """

    def __init__(self) -> None:
        self._records: dict[str, EventRecord] = {}
        self._lock = asyncio.Lock()

    async def ingest(
        self,
        event_id: str,
        event_type: str,
        payload: dict[str, Any],
        metadata: IngestMetadata | None = None,
        queue_name: str | None = None,
    ) -> IngestResult:
        record = EventRecord.new(event_id, event_type, payload, metadata, queue_name)
        async with self._lock:
            if record.id in self._records:
                return IngestResult(is_new=False, event_id=record.id)
            self._records[record.id] = record
        return IngestResult(is_new=True, event_id=record.id)

    async def get_by_id(self, event_id: str) -> EventRecord | None:
        return self._records.get(event_id)

    async def _transition(
        self, event_id: str, target: ProcessingStatus, **changes: Any
    ) -> bool:
        async with self._lock:
            record = self._records.get(event_id)
            if record is None or not can_transition(record.processing_status, target):
                return False
            if target.is_terminal:
                changes["processed_at"] = datetime.now(UTC)
            self._records[event_id] = record.model_copy(
                update={"processing_status": target, **changes}
            )
            return True

    async def mark_processing(self, event_id: str) -> bool:
        return await self._transition(event_id, ProcessingStatus.PROCESSING)

    async def mark_pending(self, event_id: str) -> bool:
        return await self._transition(event_id, ProcessingStatus.PENDING)

    async def mark_processed(self, event_id: str) -> bool:
        return await self._transition(event_id, ProcessingStatus.PROCESSED)

    async def mark_failed(self, event_id: str, error: str | None = None) -> bool:
        changes: dict[str, Any] = {}
        if error is not None:
            changes["last_error"] = error
        return await self._transition(event_id, ProcessingStatus.FAILED, **changes)

    async def increment_retry(self, event_id: str, error: str | None = None) -> int:
        async with self._lock:
            record = self._records.get(event_id)
            if record is None:
                raise KeyError(event_id)
            update: dict[str, Any] = {"retry_count": record.retry_count + 1}
            if error is not None:
                update["last_error"] = error
            self._records[event_id] = record.model_copy(update=update)
            return update["retry_count"]

    async def count_by_status(self, status: ProcessingStatus) -> int:
        return sum(1 for r in self._records.values() if r.processing_status == status)

    async def list_by_status(
        self,
        status: ProcessingStatus,
        older_than: timedelta | None = None,
        limit: int = 100,
    ) -> list[EventRecord]:
        cutoff = datetime.now(UTC) - older_than if older_than is not None else None
        matches = [
            r
            for r in self._records.values()
            if r.processing_status == status and (cutoff is None or r.received_at <= cutoff)
        ]
        matches.sort(key=lambda r: r.received_at)
        return matches[:limit]

    async def close(self) -> None:
        pass

    def __len__(self) -> int:
        return len(self._records)
