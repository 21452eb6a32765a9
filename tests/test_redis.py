"""Tests for the Redis event store and queue transport.

These tests require a running Redis instance. Start one with:
    docker run -p 6379:6379 redis:7

Tests will be skipped if Redis is not available.
"""

import asyncio
import uuid
from datetime import timedelta

import pytest
from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError

from menuvo_worker.backends import connection as redis_connection
from menuvo_worker.backends.connection import RedisConnection, sanitize_url
from menuvo_worker.backends.redis_backend import RedisTransport
from menuvo_worker.core.event import IngestMetadata, ProcessingStatus
from menuvo_worker.core.ingestion import Ingestor
from menuvo_worker.core.processor import Processor
from menuvo_worker.core.registry import HandlerRegistry
from menuvo_worker.core.retry import BackoffPolicy, RetryPolicy
from menuvo_worker.stores.redis_store import RedisEventStore
from tests.conftest import RecordingHandler, drain


def redis_available() -> bool:
    """Check if Redis is available at localhost:6379."""
    try:
        import redis

        client = redis.Redis(host="localhost", port=6379)
        client.ping()
        client.close()
        return True
    except Exception:
        return False


REDIS_URL = "redis://localhost:6379"


@pytest.mark.parametrize(
    "url,expected",
    [
        ("redis://:secret@cache.internal:6380/0", "redis://:****@cache.internal:6380/0"),
        ("redis://localhost", "localhost:6379"),
    ],
)
def test_sanitize_url_masks_password(url, expected):
    assert sanitize_url(url) == expected


class FakeRedis:
    """Client double so reconnection runs without a server."""

    def __init__(self, connection_pool=None) -> None:
        self.healthy = True
        self.closed = False

    async def ping(self):
        if not self.healthy:
            raise RedisConnectionError("Connection closed by server.")
        return True

    async def brpop(self, keys, timeout=0):
        raise RedisConnectionError("Connection reset by peer")

    async def aclose(self):
        self.closed = True


class FakePool:
    @classmethod
    def from_url(cls, url, **kwargs):
        return cls()


@pytest.fixture
def fake_clients(monkeypatch):
    created: list[FakeRedis] = []

    def make_client(connection_pool=None):
        client = FakeRedis(connection_pool)
        created.append(client)
        return client

    monkeypatch.setattr(redis_connection, "Redis", make_client)
    monkeypatch.setattr(redis_connection, "ConnectionPool", FakePool)
    return created


async def test_reconnect_closes_broken_client(fake_clients):
    conn = RedisConnection(REDIS_URL)
    first = await conn.get_client()
    first.healthy = False

    second = await conn.get_client()

    assert second is not first
    assert first.closed and not second.closed
    assert conn.reconnections == 1


async def test_failed_pop_keeps_one_live_client(fake_clients):
    conn = RedisConnection(REDIS_URL)
    transport = RedisTransport(conn)

    with pytest.raises(RedisConnectionError):
        await transport.dequeue_blocking("queue:q", timeout=1)
    assert not hasattr(conn, "invalidate")
    assert await conn.get_client() is fake_clients[0]

    fake_clients[0].healthy = False
    with pytest.raises(RedisConnectionError):
        await transport.dequeue_blocking("queue:q", timeout=1)

    assert len(fake_clients) == 2
    assert fake_clients[0].closed
    assert not fake_clients[1].closed


async def test_non_positive_pop_timeout_rejected(fake_clients):
    transport = RedisTransport(RedisConnection(REDIS_URL))

    with pytest.raises(ValueError, match="positive or None"):
        await transport.dequeue_blocking("queue:q", timeout=0)
    assert fake_clients == []


requires_redis = pytest.mark.skipif(
    not redis_available(),
    reason="Redis not available at localhost:6379. Start with: docker run -p 6379:6379 redis:7",
)


@pytest.fixture
async def connection():
    conn = RedisConnection(REDIS_URL)
    yield conn
    await conn.close()


@pytest.fixture
async def redis_store(connection):
    prefix = f"menuvo-test-{uuid.uuid4().hex[:8]}"
    store = RedisEventStore(connection, key_prefix=prefix)
    yield store
    # Cleanup
    client = Redis.from_url(REDIS_URL, decode_responses=True)
    try:
        keys = [key async for key in client.scan_iter(match=f"{prefix}:*")]
        if keys:
            await client.delete(*keys)
    finally:
        await client.aclose()


@pytest.fixture
async def redis_transport(connection):
    queue = f"queue:test-{uuid.uuid4().hex[:8]}"
    transport = RedisTransport(connection)
    yield transport, queue
    try:
        await transport.delete_queue(queue)
    except Exception:
        pass


@requires_redis
class TestRedisEventStore:
    async def test_ingest_and_load(self, redis_store: RedisEventStore):
        meta = IngestMetadata(source_account_id="acct_1", resource_id="cs_1", resource_type="checkout.session")

        result = await redis_store.ingest("evt_1", "checkout.session.completed", {"nested": {"a": [1, 2]}}, meta)
        record = await redis_store.get_by_id("evt_1")

        assert result.is_new
        assert record.type == "checkout.session.completed"
        assert record.payload == {"nested": {"a": [1, 2]}}
        assert record.source_account_id == "acct_1"
        assert record.processing_status == ProcessingStatus.PENDING
        assert record.retry_count == 0
        assert record.processed_at is None

    async def test_duplicate_ingest(self, redis_store: RedisEventStore):
        await redis_store.ingest("evt_1", "t", {"v": 1})
        result = await redis_store.ingest("evt_1", "t", {"v": 2})

        assert not result.is_new
        assert (await redis_store.get_by_id("evt_1")).payload == {"v": 1}

    async def test_concurrent_ingest_creates_one(self, redis_store: RedisEventStore):
        results = await asyncio.gather(*(redis_store.ingest("evt_race", "t", {"n": i}) for i in range(5)))

        assert sum(r.is_new for r in results) == 1
        assert await redis_store.count_by_status(ProcessingStatus.PENDING) == 1

    async def test_transitions_and_status_index(self, redis_store: RedisEventStore):
        await redis_store.ingest("evt_1", "t", {})

        assert await redis_store.mark_processing("evt_1")
        assert await redis_store.count_by_status(ProcessingStatus.PENDING) == 0
        assert await redis_store.count_by_status(ProcessingStatus.PROCESSING) == 1

        assert await redis_store.mark_processed("evt_1")
        assert not await redis_store.mark_pending("evt_1")

        record = await redis_store.get_by_id("evt_1")
        assert record.processing_status == ProcessingStatus.PROCESSED
        assert record.processed_at is not None
        assert await redis_store.count_by_status(ProcessingStatus.PROCESSED) == 1

    async def test_increment_retry_and_fail(self, redis_store: RedisEventStore):
        await redis_store.ingest("evt_1", "t", {})

        assert await redis_store.increment_retry("evt_1", "RuntimeError: a") == 1
        assert await redis_store.increment_retry("evt_1", "RuntimeError: b") == 2
        assert await redis_store.mark_failed("evt_1", "RuntimeError: b")

        record = await redis_store.get_by_id("evt_1")
        assert record.retry_count == 2
        assert record.last_error == "RuntimeError: b"
        assert record.processing_status == ProcessingStatus.FAILED

    async def test_list_by_status_with_queue_name(self, redis_store: RedisEventStore):
        await redis_store.ingest("evt_1", "t", {}, queue_name="queue:stripe-events")
        await asyncio.sleep(0.01)
        await redis_store.ingest("evt_2", "t", {})
        await redis_store.ingest("evt_3", "t", {})
        await redis_store.mark_processing("evt_3")

        pending = await redis_store.list_by_status(ProcessingStatus.PENDING)

        assert [r.id for r in pending] == ["evt_1", "evt_2"]
        assert pending[0].queue_name == "queue:stripe-events"
        assert pending[1].queue_name is None
        assert await redis_store.list_by_status(ProcessingStatus.PENDING, older_than=timedelta(hours=1)) == []
        assert [r.id for r in await redis_store.list_by_status(ProcessingStatus.PROCESSING)] == ["evt_3"]

    async def test_missing_record(self, redis_store: RedisEventStore):
        assert await redis_store.get_by_id("ghost") is None
        assert not await redis_store.mark_processing("ghost")
        with pytest.raises(KeyError):
            await redis_store.increment_retry("ghost")


@requires_redis
class TestRedisTransport:
    async def test_fifo_and_timeout(self, redis_transport):
        transport, queue = redis_transport
        for i in range(3):
            await transport.enqueue(queue, f"evt_{i}")

        popped = [await transport.dequeue_blocking(queue, timeout=1) for _ in range(3)]

        assert popped == ["evt_0", "evt_1", "evt_2"]
        assert await transport.dequeue_blocking(queue, timeout=0.1) is None

    async def test_dead_letters(self, redis_transport):
        transport, queue = redis_transport
        await transport.dead_letter(queue, "evt_1")
        await transport.dead_letter(queue, "evt_2")

        assert await transport.dead_letter_depth(queue) == 2
        assert await transport.list_dead_letters(queue) == ["evt_2", "evt_1"]
        assert await transport.depth(queue) == 0

    async def test_health(self, redis_transport):
        transport, queue = redis_transport
        await transport.enqueue(queue, "evt_1")

        health = await transport.health([queue])

        assert health.healthy
        assert health.details["queues"] == {queue: 1}
        assert health.details["metrics"]["enqueued"] == 1


@requires_redis
@pytest.mark.timeout(10)
async def test_pipeline_end_to_end(redis_store, redis_transport):
    transport, queue = redis_transport
    registry = HandlerRegistry()
    ok, broken = RecordingHandler(), RecordingHandler(failures=100)
    registry.register("payment.confirmed", ok)
    registry.register("order.created", broken)
    ingestor = Ingestor(redis_store, transport, queue)
    processor = Processor(
        queue,
        redis_store,
        transport,
        registry,
        retry_policy=RetryPolicy(max_retries=3),
        backoff_policy=BackoffPolicy(base_delay=0.0, jitter=False),
        poll_timeout=0.1,
    )

    await ingestor.ingest("evt_1", "payment.confirmed", {})
    await ingestor.ingest("evt_2", "order.created", {})
    await drain(processor, transport)

    assert (await redis_store.get_by_id("evt_1")).processing_status == ProcessingStatus.PROCESSED
    failed = await redis_store.get_by_id("evt_2")
    assert failed.processing_status == ProcessingStatus.FAILED
    assert failed.retry_count == 3
    assert await transport.list_dead_letters(queue) == ["evt_2"]
