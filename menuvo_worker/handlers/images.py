"""Image variant handler."""

from typing import Protocol

from menuvo_worker.core.registry import HandlerRegistry
from menuvo_worker.handlers.payloads import IMAGE_VARIANTS_REQUESTED, ImageVariantJob


class ImageVariantService(Protocol):
    """Renders and stores resized variants.

    Variant keys are derived from the original key, so re-running overwrites
    the same objects.
    """

    async def generate_variants(self, image_id: str, original_key: str, variants: list[str]) -> None: ...


def register(registry: HandlerRegistry, service: ImageVariantService) -> None:
    async def generate(image_id: str, job: ImageVariantJob) -> None:
        await service.generate_variants(job.image_id, job.original_key, job.variants)

    registry.register(IMAGE_VARIANTS_REQUESTED, generate, ImageVariantJob)
