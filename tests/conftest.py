"""Pytest configuration, Hypothesis profiles and shared pipeline fixtures."""

import asyncio

import pytest
from hypothesis import settings
from hypothesis import strategies as st

from menuvo_worker.backends.inmemory import InMemoryTransport
from menuvo_worker.core.event import ProcessingStatus
from menuvo_worker.core.ingestion import Ingestor
from menuvo_worker.core.processor import Processor
from menuvo_worker.core.registry import HandlerRegistry
from menuvo_worker.core.retry import BackoffPolicy, RetryPolicy
from menuvo_worker.stores.memory import InMemoryEventStore

# Register Hypothesis profiles
settings.register_profile("ci", max_examples=100)
settings.register_profile("dev", max_examples=20)

# Load dev profile by default, CI can override via --hypothesis-profile=ci
settings.load_profile("dev")

QUEUE = "queue:test-events"


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Use asyncio as the async backend for pytest-asyncio."""
    return "asyncio"


def valid_event_ids() -> st.SearchStrategy[str]:
    """Provider-style ids such as ``evt_1Nx`` or ``tr_abc:payment.paid``."""
    return st.from_regex(r"[A-Za-z0-9_:.\-]{1,40}", fullmatch=True)


def valid_payloads() -> st.SearchStrategy[dict]:
    return st.dictionaries(
        keys=st.text(min_size=1, max_size=10),
        values=st.one_of(st.integers(), st.text(max_size=20), st.booleans(), st.none()),
        max_size=5,
    )


class RecordingHandler:
    """Handler that records calls and fails the first ``failures`` of them."""

    def __init__(self, failures: int = 0, error: Exception | None = None) -> None:
        self.failures = failures
        self.error = error or RuntimeError("downstream unavailable")
        self.calls: list[tuple[str, object]] = []

    async def __call__(self, resource_id: str, payload: object) -> None:
        self.calls.append((resource_id, payload))
        if len(self.calls) <= self.failures:
            raise self.error


@pytest.fixture
def store() -> InMemoryEventStore:
    return InMemoryEventStore()


@pytest.fixture
def transport() -> InMemoryTransport:
    return InMemoryTransport()


@pytest.fixture
def registry() -> HandlerRegistry:
    return HandlerRegistry()


@pytest.fixture
def ingestor(store, transport) -> Ingestor:
    return Ingestor(store, transport, QUEUE)


@pytest.fixture
def processor(store, transport, registry) -> Processor:
    return Processor(
        queue_name=QUEUE,
        store=store,
        transport=transport,
        registry=registry,
        retry_policy=RetryPolicy(max_retries=3),
        backoff_policy=BackoffPolicy(base_delay=0.0, jitter=False),
        poll_timeout=0.05,
    )


async def drain(processor: Processor, transport: InMemoryTransport, limit: int = 100) -> int:
    """Feed queued ids to the processor one by one until the queue is empty."""
    handled = 0
    while handled < limit:
        event_id = await transport.dequeue_blocking(processor.queue_name, timeout=0.01)
        if event_id is None:
            break
        await processor.process_event(event_id)
        handled += 1
    return handled


async def wait_for_status(
    store: InMemoryEventStore,
    event_id: str,
    status: ProcessingStatus,
    timeout: float = 2.0,
) -> None:
    async def _poll() -> None:
        while True:
            record = await store.get_by_id(event_id)
            if record is not None and record.processing_status == status:
                return
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout)
