"""Handler modules and the startup registration table.

Each module exposes ``register(registry, service)``. ``build_registry`` is the
single place the table is assembled; adding an event type means adding a
``register`` call in its module.
"""

from menuvo_worker.core.registry import HandlerRegistry
from menuvo_worker.handlers import images, imports, mollie_events, paypal_events, stripe_events
from menuvo_worker.handlers.images import ImageVariantService
from menuvo_worker.handlers.imports import MenuImportService
from menuvo_worker.handlers.mollie_events import MollieEventService
from menuvo_worker.handlers.paypal_events import PayPalEventService
from menuvo_worker.handlers.stripe_events import StripeEventService


def build_registry(
    stripe_service: StripeEventService | None = None,
    mollie_service: MollieEventService | None = None,
    image_service: ImageVariantService | None = None,
    import_service: MenuImportService | None = None,
    paypal_service: PayPalEventService | None = None,
) -> HandlerRegistry:
    """Register the handler modules whose collaborators are provided."""
    registry = HandlerRegistry()
    if stripe_service is not None:
        stripe_events.register(registry, stripe_service)
    if mollie_service is not None:
        mollie_events.register(registry, mollie_service)
    if image_service is not None:
        images.register(registry, image_service)
    if import_service is not None:
        imports.register(registry, import_service)
    if paypal_service is not None:
        paypal_events.register(registry, paypal_service)
    return registry


__all__ = [
    "ImageVariantService",
    "MenuImportService",
    "MollieEventService",
    "PayPalEventService",
    "StripeEventService",
    "build_registry",
]
