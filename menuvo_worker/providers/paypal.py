"""PayPal webhook ingestion.

PayPal signs deliveries with a set of ``paypal-*`` transmission headers that
only PayPal's verify-webhook-signature API can check, so verification is
delegated to an injected ``PayPalSignatureVerifier``. Deliveries that fail
verification are rejected before anything touches the store. PayPal assigns
the event id, which is the dedup key.
"""

import json
from collections.abc import Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol

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

TRANSMISSION_HEADERS = (
    "paypal-auth-algo",
    "paypal-cert-url",
    "paypal-transmission-id",
    "paypal-transmission-sig",
    "paypal-transmission-time",
)


class PayPalSignatureVerifier(Protocol):
    """Checks a delivery against PayPal's verify-webhook-signature API."""

    async def verify(
        self, webhook_id: str, transmission: Mapping[str, str], event: dict[str, Any]
    ) -> bool:
        """Return True when PayPal reports the signature as valid."""
        ...


def transmission_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Pick the signature headers, matching names case-insensitively.

    Raises:
        SignatureVerificationError: If any of them is missing or empty.
    """
    lowered = {key.lower(): value for key, value in headers.items()}
    missing = [name for name in TRANSMISSION_HEADERS if not lowered.get(name)]
    if missing:
        raise SignatureVerificationError(f"Missing PayPal headers: {', '.join(missing)}")
    return {name: lowered[name] for name in TRANSMISSION_HEADERS}


def _parse_create_time(value: Any) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def build_metadata(event: dict[str, Any]) -> IngestMetadata:
    """Derive store metadata from a PayPal event body."""
    resource = event.get("resource")
    if not isinstance(resource, dict):
        resource = {}
    merchant_id = resource.get("merchant_id")
    resource_id = resource.get("id")
    resource_type = event.get("resource_type")
    return IngestMetadata(
        source_account_id=merchant_id if isinstance(merchant_id, str) else None,
        resource_id=resource_id if isinstance(resource_id, str) else None,
        resource_type=resource_type if isinstance(resource_type, str) else None,
        provider_created_at=_parse_create_time(event.get("create_time")),
    )


class PayPalWebhookHandler:
    """Verifies, records and enqueues PayPal webhook deliveries."""

    def __init__(
        self,
        ingestor: Ingestor,
        verifier: PayPalSignatureVerifier,
        webhook_id: str | None,
    ) -> None:
        self.ingestor = ingestor
        self.verifier = verifier
        self._webhook_id = webhook_id

    @classmethod
    def from_settings(
        cls, settings: "WorkerSettings", ingestor: Ingestor, verifier: PayPalSignatureVerifier
    ) -> "PayPalWebhookHandler":
        return cls(ingestor, verifier, settings.paypal_webhook_id)

    async def handle(self, raw_body: bytes | str, headers: Mapping[str, str]) -> WebhookResponse:
        """Handle a webhook delivery.

        Raises:
            SignatureVerificationError: Missing webhook id or headers, a
                verifier failure, or a signature PayPal rejects.
            InvalidWebhookError: Body that is not a PayPal event object.
        """
        if not self._webhook_id:
            raise SignatureVerificationError("PayPal webhook id is not configured")
        transmission = transmission_headers(headers)
        event = self._parse(raw_body)
        event_id, event_type = event["id"], event["event_type"]

        try:
            valid = await self.verifier.verify(self._webhook_id, transmission, event)
        except Exception as e:
            logger.error(
                "PayPal signature verification errored",
                extra={"event_id": event_id, "event_type": event_type, "error": str(e)},
            )
            raise SignatureVerificationError(f"PayPal signature verification failed: {e}") from e
        if not valid:
            logger.warning(
                "Webhook signature verification failed",
                extra={"event_id": event_id, "event_type": event_type},
            )
            raise SignatureVerificationError("Invalid PayPal webhook signature")

        metadata = build_metadata(event)
        logger.info(
            "PayPal webhook received",
            extra={
                "event_id": event_id,
                "event_type": event_type,
                "resource_type": metadata.resource_type,
            },
        )

        result = await self.ingestor.ingest(event_id, event_type, event, metadata)
        if not result.is_new:
            return WebhookResponse(duplicate=True, event_id=event_id)
        return WebhookResponse(event_id=event_id)

    def _parse(self, raw_body: bytes | str) -> dict[str, Any]:
        body = raw_body.decode("utf-8") if isinstance(raw_body, bytes) else raw_body
        try:
            event = json.loads(body)
        except json.JSONDecodeError as e:
            raise InvalidWebhookError(f"Webhook body is not valid JSON: {e}") from e
        if not isinstance(event, dict):
            raise InvalidWebhookError("Webhook body must be a JSON object")
        if not isinstance(event.get("id"), str) or not isinstance(event.get("event_type"), str):
            raise InvalidWebhookError("PayPal event is missing 'id' or 'event_type'")
        return event
