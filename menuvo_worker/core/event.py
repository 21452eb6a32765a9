"""Event record model for the menuvo worker."""

import json
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

# Maximum payload size (1MB)
MAX_PAYLOAD_SIZE = 1_000_000


class ProcessingStatus(str, Enum):
    """Lifecycle of a stored event."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    PROCESSED = "PROCESSED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessingStatus.PROCESSED, ProcessingStatus.FAILED)


# Forward-only transitions; terminal statuses accept nothing.
ALLOWED_TRANSITIONS: dict[ProcessingStatus, frozenset[ProcessingStatus]] = {
    ProcessingStatus.PENDING: frozenset(
        {ProcessingStatus.PROCESSING, ProcessingStatus.PROCESSED, ProcessingStatus.FAILED}
    ),
    ProcessingStatus.PROCESSING: frozenset(
        {
            ProcessingStatus.PROCESSING,
            ProcessingStatus.PENDING,
            ProcessingStatus.PROCESSED,
            ProcessingStatus.FAILED,
        }
    ),
    ProcessingStatus.PROCESSED: frozenset(),
    ProcessingStatus.FAILED: frozenset(),
}


def can_transition(current: ProcessingStatus, target: ProcessingStatus) -> bool:
    """Return True if ``current -> target`` is a legal status move."""
    return target in ALLOWED_TRANSITIONS[current]


class IngestMetadata(BaseModel):
    """Provider metadata recorded alongside an event.

    Attributes:
        source_account_id: Multi-tenant disambiguator (Stripe Connect account,
            Mollie merchant id).
        resource_id: The provider object the event is about.
        resource_type: Kind of that object (e.g. "checkout.session", "payment").
        api_version: Provider API version that produced the event.
        provider_created_at: When the provider created the event.
    """

    source_account_id: str | None = None
    resource_id: str | None = None
    resource_type: str | None = None
    api_version: str | None = None
    provider_created_at: datetime | None = None

    model_config = {"extra": "forbid", "frozen": True}


class IngestResult(BaseModel):
    """Outcome of an ingestion call."""

    is_new: bool
    event_id: str

    model_config = {"frozen": True}


class EventRecord(BaseModel):
    """Immutable snapshot of a stored event.

    Stores hand out fresh snapshots; mutating the ledger always goes through
    the store's mutators, never through this object.

    Attributes:
        id: External, provider-assigned identifier. Primary dedup key.
        type: Event/job kind used for handler dispatch.
        payload: JSON-serializable dictionary (max 1MB when serialized).
        received_at: UTC ingestion timestamp.
        processing_status: Current lifecycle status.
        retry_count: Number of failed processing attempts so far.
        queue_name: Queue the event was scheduled on; used to redispatch it.
    """

    id: str
    type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    source_account_id: str | None = None
    resource_id: str | None = None
    resource_type: str | None = None
    api_version: str | None = None
    provider_created_at: datetime | None = None
    received_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    processed_at: datetime | None = None
    processing_status: ProcessingStatus = ProcessingStatus.PENDING
    retry_count: int = Field(default=0, ge=0)
    last_error: str | None = None
    queue_name: str | None = None

    model_config = {
        "extra": "forbid",
        "frozen": True,
    }

    @field_validator("id", "type")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Ensure identifiers are non-empty after whitespace stripping."""
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_validator("payload")
    @classmethod
    def validate_payload(cls, v: dict[str, Any]) -> dict[str, Any]:
        """Ensure payload is strictly JSON-serializable and within size limits."""
        try:
            serialized = json.dumps(v)
        except (TypeError, ValueError) as e:
            raise ValueError(f"payload must be JSON-serializable: {e}") from e

        byte_length = len(serialized.encode("utf-8"))
        if byte_length > MAX_PAYLOAD_SIZE:
            raise ValueError(
                f"payload exceeds maximum size of {MAX_PAYLOAD_SIZE} bytes "
                f"(got {byte_length} bytes)"
            )
        return v

    @property
    def dispatch_resource_id(self) -> str:
        """Resource identifier handed to handlers, falling back to the event id."""
        return self.resource_id or self.id

    @classmethod
    def new(
        cls,
        event_id: str,
        event_type: str,
        payload: dict[str, Any],
        metadata: IngestMetadata | None = None,
        queue_name: str | None = None,
    ) -> "EventRecord":
        """Build a fresh PENDING record from ingestion arguments."""
        meta = metadata or IngestMetadata()
        return cls(
            id=event_id,
            type=event_type,
            payload=payload,
            queue_name=queue_name,
            **meta.model_dump(),
        )
