"""Core components of the menuvo worker pipeline.

Types:
    EventRecord: Immutable snapshot of a stored event.
    ProcessingStatus: PENDING / PROCESSING / PROCESSED / FAILED.
    HandlerRegistry: Event type -> handler table with typed payload decoding.
    Processor: Blocking consumer loop for one job class.
    ProcessorStats: Statistics dataclass from a processor run.
    Ingestor: Idempotent record-then-enqueue entry point.
    WorkerService: Owner of injected clients and per-job-class processors.

Failure handling:
    RetryPolicy: Bounded handler retries with optional exponential delay.
    BackoffPolicy: Exponential backoff with jitter for transport outages.
    PermanentHandlerError: Handler signal to dead-letter without retrying.
    IngestionError: Raised when an event cannot be recorded or scheduled.

Constants:
    MAX_PAYLOAD_SIZE: Maximum payload size in bytes (1MB).
"""

from menuvo_worker.core.event import (
    MAX_PAYLOAD_SIZE,
    EventRecord,
    IngestMetadata,
    IngestResult,
    ProcessingStatus,
)
from menuvo_worker.core.ingestion import (
    IngestionError,
    IngestionTimeoutError,
    Ingestor,
    InvalidEventError,
)
from menuvo_worker.core.processor import Processor, ProcessorStats
from menuvo_worker.core.registry import (
    HandlerRegistrationError,
    HandlerRegistry,
    PermanentHandlerError,
)
from menuvo_worker.core.retry import BackoffPolicy, RetryPolicy
from menuvo_worker.core.service import DEFAULT_JOB_CLASSES, JobClass, WorkerService

__all__ = [
    "DEFAULT_JOB_CLASSES",
    "MAX_PAYLOAD_SIZE",
    "BackoffPolicy",
    "EventRecord",
    "HandlerRegistrationError",
    "HandlerRegistry",
    "IngestMetadata",
    "IngestResult",
    "IngestionError",
    "IngestionTimeoutError",
    "Ingestor",
    "InvalidEventError",
    "JobClass",
    "PermanentHandlerError",
    "ProcessingStatus",
    "Processor",
    "ProcessorStats",
    "RetryPolicy",
    "WorkerService",
]
