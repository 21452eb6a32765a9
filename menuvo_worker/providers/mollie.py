"""Mollie webhook ingestion.

Mollie posts only a resource id (form field ``id``). Authenticity comes from
fetching the resource back from the Mollie API rather than from a signature.
Mollie sends no event ids, so one is derived from the resource id and the
resulting event type: the same state delivered twice deduplicates, a new
state becomes a new event.
"""

from collections.abc import Mapping
from typing import Any, Protocol

from menuvo_worker.core.event import IngestMetadata
from menuvo_worker.core.ingestion import IngestionError, Ingestor
from menuvo_worker.core.logging import get_logger
from menuvo_worker.providers.base import InvalidWebhookError, WebhookResponse

logger = get_logger("webhooks")

RESOURCE_PREFIXES: dict[str, str] = {
    "tr_": "payment",
    "sub_": "subscription",
    "re_": "refund",
    "mdt_": "mandate",
}


class ResourceFetchError(IngestionError):
    """Raised when the resource cannot be fetched; the provider should retry."""


class MollieResourceFetcher(Protocol):
    """Reads resources back from the Mollie API."""

    async def get_payment(self, payment_id: str) -> dict[str, Any]: ...


def get_resource_type(resource_id: str) -> str | None:
    for prefix, resource_type in RESOURCE_PREFIXES.items():
        if resource_id.startswith(prefix):
            return resource_type
    return None


def payment_event_type(payment: Mapping[str, Any]) -> str:
    """Map a payment's status to an event type, e.g. ``payment.paid``."""
    return f"payment.{payment.get('status', 'unknown')}"


def extract_merchant_id(payment: Mapping[str, Any]) -> str | None:
    """Read ``metadata.merchantId`` as an int or a numeric string."""
    metadata = payment.get("metadata")
    if not isinstance(metadata, Mapping):
        return None
    merchant_id = metadata.get("merchantId")
    if isinstance(merchant_id, bool):
        return None
    if isinstance(merchant_id, int):
        return str(merchant_id)
    if isinstance(merchant_id, str) and merchant_id.strip():
        return merchant_id.strip()
    return None


def derive_event_id(resource_id: str, event_type: str) -> str:
    return f"{resource_id}:{event_type}"


class MollieWebhookHandler:
    """Resolves, records and enqueues Mollie webhook deliveries."""

    def __init__(self, ingestor: Ingestor, fetcher: MollieResourceFetcher) -> None:
        self.ingestor = ingestor
        self.fetcher = fetcher

    async def handle(self, form: Mapping[str, Any]) -> WebhookResponse:
        """Handle a webhook form post.

        Raises:
            InvalidWebhookError: The form has no usable ``id`` field.
            ResourceFetchError: The payment could not be read back from Mollie.
        """
        resource_id = form.get("id")
        if not isinstance(resource_id, str) or not resource_id.strip():
            logger.warning("Mollie webhook missing 'id' field")
            raise InvalidWebhookError("Missing 'id' field")
        resource_id = resource_id.strip()

        resource_type = get_resource_type(resource_id)
        if resource_type is None:
            logger.warning(
                "Unknown Mollie resource type (unrecognized ID prefix)",
                extra={"resource_id": resource_id},
            )
            # Acknowledge so Mollie stops redelivering.
            return WebhookResponse(skipped=True)

        logger.info(
            "Mollie webhook received",
            extra={"resource_id": resource_id, "resource_type": resource_type},
        )

        if resource_type == "payment":
            return await self._handle_payment(resource_id)
        if resource_type == "refund":
            return await self._record(resource_id, "refund", "refund.updated", {"id": resource_id})
        if resource_type == "subscription":
            return await self._record(
                resource_id, "subscription", "subscription.updated", {"id": resource_id}
            )

        # Mandates are handled through the payment flow.
        logger.debug(
            "Mandate webhook acknowledged",
            extra={"resource_id": resource_id, "resource_type": resource_type},
        )
        return WebhookResponse(skipped=True)

    async def _handle_payment(self, payment_id: str) -> WebhookResponse:
        try:
            payment = await self.fetcher.get_payment(payment_id)
        except Exception as e:
            logger.error(
                "Failed to fetch payment from Mollie API",
                extra={"resource_id": payment_id, "error": str(e)},
            )
            raise ResourceFetchError(f"failed to fetch payment {payment_id}: {e}") from e

        event_type = payment_event_type(payment)
        return await self._record(
            payment_id,
            "payment",
            event_type,
            dict(payment),
            merchant_id=extract_merchant_id(payment),
        )

    async def _record(
        self,
        resource_id: str,
        resource_type: str,
        event_type: str,
        payload: dict[str, Any],
        merchant_id: str | None = None,
    ) -> WebhookResponse:
        event_id = derive_event_id(resource_id, event_type)
        metadata = IngestMetadata(
            source_account_id=merchant_id,
            resource_id=resource_id,
            resource_type=resource_type,
        )
        result = await self.ingestor.ingest(event_id, event_type, payload, metadata)
        if not result.is_new:
            return WebhookResponse(duplicate=True, event_id=event_id)
        return WebhookResponse(event_id=event_id)
