"""Event store implementations."""

from menuvo_worker.stores.base import EventStore
from menuvo_worker.stores.memory import InMemoryEventStore
from menuvo_worker.stores.redis_store import RedisEventStore

__all__ = ["EventStore", "InMemoryEventStore", "RedisEventStore"]
