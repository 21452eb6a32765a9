"""Stripe webhook ingestion.

Signatures are checked with the Stripe SDK before anything touches the store.
V1 "snapshot" events carry the full object; V2 "thin" events carry only a
reference (``related_object``) and are verified with a separate secret.
"""

import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import stripe

from menuvo_worker.core.event import IngestMetadata
from menuvo_worker.core.ingestion import Ingestor
from menuvo_worker.core.logging import get_logger
from menuvo_worker.providers.base import (
    InvalidWebhookError,
    SignatureVerificationError,
    WebhookResponse,
)

if TYPE_CHECKING:
    from menuvo_worker.config import WorkerSettings

logger = get_logger("webhooks")

DEFAULT_TOLERANCE = 300


def extract_object_metadata(payload: dict[str, Any]) -> tuple[str | None, str | None]:
    """Return ``(object_id, object_type)`` for V1 or V2 payloads."""
    data = payload.get("data")
    if isinstance(data, dict) and isinstance(data.get("object"), dict):
        obj = data["object"]
        return obj.get("id"), obj.get("object")

    related = payload.get("related_object")
    if isinstance(related, dict):
        return related.get("id"), related.get("type")

    return None, None


def _parse_created(value: Any) -> datetime | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, UTC)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def build_metadata(payload: dict[str, Any]) -> IngestMetadata:
    """Derive store metadata from a verified Stripe event body."""
    object_id, object_type = extract_object_metadata(payload)
    # V1 Connect events use "account"; V2 events scope via "context".
    account = payload.get("account") or payload.get("context")
    return IngestMetadata(
        source_account_id=account if isinstance(account, str) else None,
        resource_id=object_id,
        resource_type=object_type,
        api_version=payload.get("api_version"),
        provider_created_at=_parse_created(payload.get("created")),
    )


class StripeWebhookHandler:
    """Verifies, records and enqueues Stripe webhook deliveries."""

    def __init__(
        self,
        ingestor: Ingestor,
        webhook_secret: str | None,
        thin_webhook_secret: str | None = None,
        tolerance: int = DEFAULT_TOLERANCE,
    ) -> None:
        self.ingestor = ingestor
        self._secret = webhook_secret
        self._thin_secret = thin_webhook_secret
        self.tolerance = tolerance

    @classmethod
    def from_settings(cls, settings: "WorkerSettings", ingestor: Ingestor) -> "StripeWebhookHandler":
        return cls(
            ingestor,
            settings.stripe_webhook_secret,
            settings.stripe_webhook_secret_thin,
            tolerance=settings.stripe_signature_tolerance,
        )

    async def handle_snapshot(self, raw_body: bytes | str, signature: str | None) -> WebhookResponse:
        """Handle a V1 snapshot event."""
        return await self._handle(raw_body, signature, self._secret, "snapshot")

    async def handle_thin(self, raw_body: bytes | str, signature: str | None) -> WebhookResponse:
        """Handle a V2 thin event."""
        return await self._handle(raw_body, signature, self._thin_secret, "thin")

    def verify(self, raw_body: bytes | str, signature: str | None, secret: str | None) -> dict[str, Any]:
        """Check the signature and return the decoded event body.

        Raises:
            SignatureVerificationError: Missing secret, missing header, or bad signature.
            InvalidWebhookError: Verified body that is not a Stripe event object.
        """
        if not secret:
            raise SignatureVerificationError("Stripe webhook secret is not configured")
        if not signature:
            raise SignatureVerificationError("Missing Stripe-Signature header")

        body = raw_body.decode("utf-8") if isinstance(raw_body, bytes) else raw_body
        try:
            stripe.WebhookSignature.verify_header(body, signature, secret, self.tolerance)
        except stripe.SignatureVerificationError as e:
            logger.error(
                "Webhook signature verification failed",
                extra={"error": str(e), "body_length": len(body)},
            )
            raise SignatureVerificationError(f"Invalid signature: {e}") from e

        try:
            payload = json.loads(body)
        except json.JSONDecodeError as e:
            raise InvalidWebhookError(f"Webhook body is not valid JSON: {e}") from e

        if not isinstance(payload, dict):
            raise InvalidWebhookError("Webhook body must be a JSON object")
        if not isinstance(payload.get("id"), str) or not isinstance(payload.get("type"), str):
            raise InvalidWebhookError("Stripe event is missing 'id' or 'type'")
        return payload

    async def _handle(
        self, raw_body: bytes | str, signature: str | None, secret: str | None, kind: str
    ) -> WebhookResponse:
        payload = self.verify(raw_body, signature, secret)
        event_id, event_type = payload["id"], payload["type"]
        metadata = build_metadata(payload)

        logger.info(
            f"Stripe {kind} webhook received",
            extra={
                "event_id": event_id,
                "event_type": event_type,
                "account": metadata.source_account_id,
            },
        )

        result = await self.ingestor.ingest(event_id, event_type, payload, metadata)
        if not result.is_new:
            return WebhookResponse(duplicate=True, event_id=event_id)
        return WebhookResponse(event_id=event_id)
