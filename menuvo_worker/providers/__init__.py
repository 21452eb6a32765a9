"""Provider-specific ingestion paths (webhooks and upload jobs)."""

from menuvo_worker.providers.base import (
    InvalidWebhookError,
    SignatureVerificationError,
    WebhookResponse,
)
from menuvo_worker.providers.mollie import (
    MollieResourceFetcher,
    MollieWebhookHandler,
    ResourceFetchError,
)
from menuvo_worker.providers.paypal import PayPalSignatureVerifier, PayPalWebhookHandler
from menuvo_worker.providers.stripe import StripeWebhookHandler
from menuvo_worker.providers.uploads import (
    IMAGE_VARIANTS_REQUESTED,
    MENU_IMPORT_REQUESTED,
    UnsupportedFileTypeError,
    UploadJobs,
)

__all__ = [
    "IMAGE_VARIANTS_REQUESTED",
    "MENU_IMPORT_REQUESTED",
    "InvalidWebhookError",
    "MollieResourceFetcher",
    "MollieWebhookHandler",
    "PayPalSignatureVerifier",
    "PayPalWebhookHandler",
    "ResourceFetchError",
    "SignatureVerificationError",
    "StripeWebhookHandler",
    "UnsupportedFileTypeError",
    "UploadJobs",
    "WebhookResponse",
]
