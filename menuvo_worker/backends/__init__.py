"""Queue transport implementations."""

from menuvo_worker.backends.base import (
    DEAD_LETTER_SUFFIX,
    QueueTransport,
    TransportHealth,
    dead_letter_name,
)
from menuvo_worker.backends.connection import RedisConnection
from menuvo_worker.backends.inmemory import BackendFullError, InMemoryTransport
from menuvo_worker.backends.redis_backend import RedisTransport

__all__ = [
    "DEAD_LETTER_SUFFIX",
    "BackendFullError",
    "InMemoryTransport",
    "QueueTransport",
    "RedisConnection",
    "RedisTransport",
    "TransportHealth",
    "dead_letter_name",
]
