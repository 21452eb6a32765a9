"""Redis hash-backed event store.

Layout:
- ``{prefix}:event:{id}``: hash holding one record.
- ``{prefix}:events:status:{STATUS}``: set of ids currently in that status.

Every status change runs in a WATCH/MULTI transaction on the record key so
transitions are serialized per row and the status index moves together with
the status field.
"""

import json
from datetime import UTC, datetime, timedelta
from typing import Any

from redis.exceptions import WatchError

from menuvo_worker.backends.connection import RedisConnection, as_connection
from menuvo_worker.core.event import (
    EventRecord,
    IngestMetadata,
    IngestResult,
    ProcessingStatus,
    can_transition,
)
from menuvo_worker.core.logging import get_logger

logger = get_logger("redis")

_DATETIME_FIELDS = ("received_at", "processed_at", "provider_created_at")


def _serialize(record: EventRecord) -> dict[str, str]:
    """Flatten a record into hash fields, omitting unset optionals."""
    data = record.model_dump(mode="json", exclude_none=True)
    data["payload"] = json.dumps(record.payload)
    data["retry_count"] = str(record.retry_count)
    return {key: str(value) for key, value in data.items()}


def _deserialize(data: dict[str, str]) -> EventRecord:
    fields: dict[str, Any] = dict(data)
    fields["payload"] = json.loads(fields.get("payload", "{}"))
    fields["retry_count"] = int(fields.get("retry_count", 0))
    for key in _DATETIME_FIELDS:
        if key in fields:
            fields[key] = datetime.fromisoformat(fields[key])
    return EventRecord.model_validate(fields)


class RedisEventStore:
    """Durable, deduplicating event ledger on Redis hashes."""

    def __init__(
        self,
        connection: RedisConnection | str,
        key_prefix: str = "menuvo",
    ) -> None:
        """Initialize the store.

        Args:
            connection: A shared RedisConnection or a Redis URL.
            key_prefix: Namespace for all keys written by this store.
        """
        self._conn = as_connection(connection)
        self.key_prefix = key_prefix

    def record_key(self, event_id: str) -> str:
        return f"{self.key_prefix}:event:{event_id}"

    def status_key(self, status: ProcessingStatus) -> str:
        return f"{self.key_prefix}:events:status:{status.value}"

    async def ingest(
        self,
        event_id: str,
        event_type: str,
        payload: dict[str, Any],
        metadata: IngestMetadata | None = None,
        queue_name: str | None = None,
    ) -> IngestResult:
        record = EventRecord.new(event_id, event_type, payload, metadata, queue_name)
        key = self.record_key(record.id)
        mapping = _serialize(record)
        redis = await self._conn.get_client()

        async with redis.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(key)
                    if await pipe.exists(key):
                        return IngestResult(is_new=False, event_id=record.id)
                    pipe.multi()
                    pipe.hset(key, mapping=mapping)
                    pipe.sadd(self.status_key(record.processing_status), record.id)
                    await pipe.execute()
                    logger.debug(f"Stored event {record.id} ({record.type})")
                    return IngestResult(is_new=True, event_id=record.id)
                except WatchError:
                    # Concurrent writer touched the key; re-check existence.
                    continue

    async def get_by_id(self, event_id: str) -> EventRecord | None:
        redis = await self._conn.get_client()
        data = await redis.hgetall(self.record_key(event_id))
        if not data:
            return None
        return _deserialize(data)

    async def _transition(
        self, event_id: str, target: ProcessingStatus, extra: dict[str, str] | None = None
    ) -> bool:
        key = self.record_key(event_id)
        redis = await self._conn.get_client()

        async with redis.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(key)
                    raw = await pipe.hget(key, "processing_status")
                    if raw is None:
                        return False
                    current = ProcessingStatus(raw)
                    if not can_transition(current, target):
                        logger.debug(
                            f"Ignoring {current.value} -> {target.value} for {event_id}"
                        )
                        return False

                    mapping = {"processing_status": target.value, **(extra or {})}
                    if target.is_terminal:
                        mapping["processed_at"] = datetime.now(UTC).isoformat()

                    pipe.multi()
                    pipe.hset(key, mapping=mapping)
                    if current != target:
                        pipe.smove(self.status_key(current), self.status_key(target), event_id)
                    await pipe.execute()
                    return True
                except WatchError:
                    continue

    async def mark_processing(self, event_id: str) -> bool:
        return await self._transition(event_id, ProcessingStatus.PROCESSING)

    async def mark_pending(self, event_id: str) -> bool:
        return await self._transition(event_id, ProcessingStatus.PENDING)

    async def mark_processed(self, event_id: str) -> bool:
        return await self._transition(event_id, ProcessingStatus.PROCESSED)

    async def mark_failed(self, event_id: str, error: str | None = None) -> bool:
        extra = {"last_error": error} if error is not None else None
        return await self._transition(event_id, ProcessingStatus.FAILED, extra)

    async def increment_retry(self, event_id: str, error: str | None = None) -> int:
        key = self.record_key(event_id)
        redis = await self._conn.get_client()

        async with redis.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(key)
                    if not await pipe.exists(key):
                        raise KeyError(event_id)
                    pipe.multi()
                    pipe.hincrby(key, "retry_count", 1)
                    if error is not None:
                        pipe.hset(key, "last_error", error)
                    results = await pipe.execute()
                    return int(results[0])
                except WatchError:
                    continue

    async def count_by_status(self, status: ProcessingStatus) -> int:
        redis = await self._conn.get_client()
        return int(await redis.scard(self.status_key(status)))

    async def list_by_status(
        self,
        status: ProcessingStatus,
        older_than: timedelta | None = None,
        limit: int = 100,
    ) -> list[EventRecord]:
        """Scan the status index and load matching records, oldest first.

        The index is unordered, so every member is loaded before sorting.
        Ids whose record has moved on since the scan are left out.
        """
        redis = await self._conn.get_client()
        cutoff = datetime.now(UTC) - older_than if older_than is not None else None
        records: list[EventRecord] = []
        async for event_id in redis.sscan_iter(self.status_key(status)):
            data = await redis.hgetall(self.record_key(event_id))
            if not data:
                continue
            record = _deserialize(data)
            if record.processing_status != status:
                continue
            if cutoff is not None and record.received_at > cutoff:
                continue
            records.append(record)
        records.sort(key=lambda r: r.received_at)
        return records[:limit]

    async def close(self) -> None:
        await self._conn.close()
