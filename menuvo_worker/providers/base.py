"""Shared types for provider ingestion paths."""

from pydantic import BaseModel

from menuvo_worker.core.ingestion import IngestionError, InvalidEventError


class SignatureVerificationError(IngestionError):
    """Raised when a webhook's authenticity cannot be verified."""


class InvalidWebhookError(InvalidEventError):
    """Raised when a webhook body is malformed."""


class WebhookResponse(BaseModel):
    """Acknowledgement returned to the HTTP layer.

    Attributes:
        received: Always True for accepted deliveries.
        duplicate: The event was already known; nothing was enqueued.
        skipped: The delivery was acknowledged but deliberately not recorded.
        event_id: Stored event id, when one was recorded.
    """

    received: bool = True
    duplicate: bool = False
    skipped: bool = False
    event_id: str | None = None
