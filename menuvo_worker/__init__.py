"""menuvo-worker - durable event/job pipeline for the Menuvo ordering platform."""

from menuvo_worker.backends import InMemoryTransport, QueueTransport, RedisTransport
from menuvo_worker.core import (
    BackoffPolicy,
    EventRecord,
    HandlerRegistry,
    IngestionError,
    Ingestor,
    IngestMetadata,
    IngestResult,
    PermanentHandlerError,
    ProcessingStatus,
    Processor,
    ProcessorStats,
    RetryPolicy,
    WorkerService,
)
from menuvo_worker.stores import EventStore, InMemoryEventStore, RedisEventStore

__version__ = "0.1.0"

__all__ = [
    # Core
    "EventRecord",
    "ProcessingStatus",
    "IngestMetadata",
    "IngestResult",
    "HandlerRegistry",
    "Ingestor",
    "Processor",
    "ProcessorStats",
    "WorkerService",
    # Failure handling
    "RetryPolicy",
    "BackoffPolicy",
    "PermanentHandlerError",
    "IngestionError",
    # Stores
    "EventStore",
    "InMemoryEventStore",
    "RedisEventStore",
    # Transports
    "QueueTransport",
    "InMemoryTransport",
    "RedisTransport",
    # Meta
    "__version__",
]
