"""Typed payloads, one model per event family.

Payloads are stored as plain JSON and decoded into these models once, at
dispatch time, by the handler registry. Provider payloads allow unknown fields
since providers add fields over time; job payloads we produce ourselves are
strict.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

IMAGE_VARIANTS_REQUESTED = "image.variants.requested"
MENU_IMPORT_REQUESTED = "menu_import.requested"

MENU_IMPORT_FILE_TYPES = ("xlsx", "csv", "json", "md", "txt")
MenuImportFileType = Literal["xlsx", "csv", "json", "md", "txt"]

IMAGE_VARIANTS = ("thumb", "display")


class _ProviderModel(BaseModel):
    model_config = ConfigDict(extra="allow")


class StripeObject(_ProviderModel):
    id: str
    object: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class StripeEventData(_ProviderModel):
    object: StripeObject


class StripeSnapshotEvent(_ProviderModel):
    """V1 event carrying a full object snapshot."""

    id: str
    type: str
    account: str | None = None
    data: StripeEventData


class StripeRelatedObject(_ProviderModel):
    id: str
    type: str


class StripeThinEvent(_ProviderModel):
    """V2 event carrying only a reference to the changed object."""

    id: str
    type: str
    context: str | None = None
    related_object: StripeRelatedObject | None = None


class MolliePayment(_ProviderModel):
    id: str
    status: str
    sequence_type: str | None = Field(default=None, alias="sequenceType")
    mandate_id: str | None = Field(default=None, alias="mandateId")
    metadata: dict[str, Any] | None = None

    @property
    def order_id(self) -> str | None:
        value = (self.metadata or {}).get("orderId")
        return str(value) if value is not None else None


class MollieResourceRef(_ProviderModel):
    """Minimal payload for resources fetched later by the handler."""

    id: str


class ImageVariantJob(BaseModel):
    """Request to render resized variants of an uploaded image."""

    model_config = ConfigDict(extra="forbid")

    image_id: str
    store_id: str
    original_key: str
    variants: list[str] = Field(default_factory=lambda: list(IMAGE_VARIANTS))


class MenuImportJob(BaseModel):
    """Request to parse an uploaded menu file."""

    model_config = ConfigDict(extra="forbid")

    job_id: str
    store_id: str
    file_key: str
    file_type: MenuImportFileType
    original_filename: str


class PayPalPurchaseUnit(_ProviderModel):
    reference_id: str | None = None


class PayPalResource(_ProviderModel):
    id: str | None = None
    merchant_id: str | None = None
    tracking_id: str | None = None
    status: str | None = None
    purchase_units: list[PayPalPurchaseUnit] = Field(default_factory=list)

    @property
    def order_id(self) -> str | None:
        """Our order id, carried as the first purchase unit's reference id."""
        if not self.purchase_units:
            return None
        return self.purchase_units[0].reference_id


class PayPalEvent(_ProviderModel):
    id: str
    event_type: str
    resource_type: str | None = None
    resource: PayPalResource = Field(default_factory=PayPalResource)
