"""Ingestion for user-initiated jobs (image uploads, menu imports).

The upload endpoint has already stored the file; these helpers record the job
and enqueue it so the endpoint can return immediately.
"""

from pathlib import PurePath
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from menuvo_worker.core.event import IngestMetadata, IngestResult
from menuvo_worker.core.ingestion import Ingestor, InvalidEventError
from menuvo_worker.core.logging import get_logger
from menuvo_worker.handlers.payloads import (
    IMAGE_VARIANTS,
    IMAGE_VARIANTS_REQUESTED,
    MENU_IMPORT_FILE_TYPES,
    MENU_IMPORT_REQUESTED,
    ImageVariantJob,
    MenuImportJob,
)

logger = get_logger("ingestion")

JobT = TypeVar("JobT", bound=BaseModel)

MIME_TYPE_MAP: dict[str, str] = {
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "xlsx",
    "application/vnd.ms-excel": "xlsx",
    "text/csv": "csv",
    "application/json": "json",
    "text/markdown": "md",
    "text/plain": "txt",
}


class UnsupportedFileTypeError(InvalidEventError):
    """Raised when an uploaded menu file has an unsupported type."""


def resolve_file_type(mime_type: str | None, filename: str) -> str:
    """Resolve a menu file type from its MIME type, falling back to the extension.

    Raises:
        UnsupportedFileTypeError: If neither identifies an allowed type.
    """
    file_type = MIME_TYPE_MAP.get((mime_type or "").lower())
    if file_type is None:
        ext = PurePath(filename).suffix.lstrip(".").lower()
        if ext in MENU_IMPORT_FILE_TYPES:
            file_type = ext
    if file_type is None:
        raise UnsupportedFileTypeError(
            f"Unsupported file type: {mime_type or filename}. "
            f"Allowed types: {', '.join(MENU_IMPORT_FILE_TYPES)}"
        )
    return file_type


def build_job(model: type[JobT], event_id: str, **fields: Any) -> JobT:
    """Validate job fields, reporting bad input as an ingestion error.

    Raises:
        InvalidEventError: If the fields do not form a valid ``model``.
    """
    try:
        return model(**fields)
    except ValidationError as e:
        raise InvalidEventError(
            f"rejected {model.__name__} {event_id!r}: {e.error_count()} validation error(s)",
            event_id=event_id,
        ) from e


class UploadJobs:
    """Submits image-variant and menu-import jobs."""

    def __init__(self, images: Ingestor, imports: Ingestor) -> None:
        self.images = images
        self.imports = imports

    async def submit_image_variants(
        self,
        image_id: str,
        store_id: str,
        original_key: str,
        variants: list[str] | None = None,
    ) -> IngestResult:
        job = build_job(
            ImageVariantJob,
            f"image:{image_id}",
            image_id=image_id,
            store_id=store_id,
            original_key=original_key,
            variants=list(variants or IMAGE_VARIANTS),
        )
        return await self.images.ingest(
            f"image:{image_id}",
            IMAGE_VARIANTS_REQUESTED,
            job.model_dump(),
            IngestMetadata(source_account_id=store_id, resource_id=image_id, resource_type="image"),
        )

    async def submit_menu_import(
        self,
        job_id: str,
        store_id: str,
        file_key: str,
        original_filename: str,
        mime_type: str | None = None,
    ) -> IngestResult:
        file_type = resolve_file_type(mime_type, original_filename)
        job = build_job(
            MenuImportJob,
            f"import:{job_id}",
            job_id=job_id,
            store_id=store_id,
            file_key=file_key,
            file_type=file_type,
            original_filename=original_filename,
        )
        logger.info(
            f"Submitting menu import {job_id}",
            extra={"store_id": store_id, "file_type": file_type},
        )
        return await self.imports.ingest(
            f"import:{job_id}",
            MENU_IMPORT_REQUESTED,
            job.model_dump(),
            IngestMetadata(
                source_account_id=store_id, resource_id=job_id, resource_type="menu_import"
            ),
        )
