"""Tests for InMemoryTransport."""

import asyncio

import pytest

from menuvo_worker.backends.base import dead_letter_name
from menuvo_worker.backends.inmemory import BackendFullError, InMemoryTransport


def test_dead_letter_name_is_derived():
    assert dead_letter_name("queue:images") == "queue:images:dead"


async def test_fifo_per_queue(transport: InMemoryTransport):
    for i in range(5):
        await transport.enqueue("q", f"evt_{i}")

    popped = [await transport.dequeue_blocking("q", timeout=0.1) for _ in range(5)]

    assert popped == [f"evt_{i}" for i in range(5)]
    assert await transport.dequeue_blocking("q", timeout=0.01) is None


async def test_queues_are_independent(transport: InMemoryTransport):
    await transport.enqueue("a", "evt_a")
    await transport.enqueue("b", "evt_b")

    assert await transport.dequeue_blocking("b", timeout=0.1) == "evt_b"
    assert await transport.depth("a") == 1


async def test_blocking_pop_waits_for_enqueue(transport: InMemoryTransport):
    consumer = asyncio.create_task(transport.dequeue_blocking("q", timeout=None))
    await asyncio.sleep(0.01)
    assert not consumer.done()

    await transport.enqueue("q", "evt_late")

    assert await asyncio.wait_for(consumer, 1.0) == "evt_late"


async def test_timeout_returns_none(transport: InMemoryTransport):
    assert await transport.dequeue_blocking("empty", timeout=0.02) is None


async def test_dead_letter_list(transport: InMemoryTransport):
    await transport.dead_letter("q", "evt_1")
    await transport.dead_letter("q", "evt_2")

    assert await transport.dead_letter_depth("q") == 2
    assert await transport.list_dead_letters("q") == ["evt_2", "evt_1"]
    assert await transport.list_dead_letters("q", limit=1) == ["evt_2"]
    # Dead letters are never handed to consumers.
    assert await transport.depth("q") == 0


async def test_bounded_queue_raises_when_full():
    transport = InMemoryTransport(max_size=1)
    await transport.enqueue("q", "evt_1")

    with pytest.raises(BackendFullError):
        await transport.enqueue("q", "evt_2")


async def test_health_reports_depths(transport: InMemoryTransport):
    await transport.enqueue("q", "evt_1")
    await transport.dead_letter("q", "evt_0")

    health = await transport.health(["q"])

    assert health.healthy
    assert health.details["queues"] == {"q": 1}
    assert health.details["dead_letters"] == {"q": 1}


@pytest.mark.parametrize("timeout", [0, -1.0])
async def test_non_positive_timeout_rejected(transport: InMemoryTransport, timeout):
    await transport.enqueue("q", "evt_1")

    with pytest.raises(ValueError, match="positive or None"):
        await transport.dequeue_blocking("q", timeout=timeout)
    assert await transport.depth("q") == 1
