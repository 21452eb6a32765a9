"""PayPal event handlers.

Onboarding and consent events are keyed on the PayPal merchant id; payment
events carry our order id as the first purchase unit's ``reference_id``.
Events missing those ids can never succeed, so they are logged and
acknowledged instead of retried.
"""

from typing import Protocol

from menuvo_worker.core.logging import get_logger
from menuvo_worker.core.registry import HandlerRegistry
from menuvo_worker.handlers.payloads import PayPalEvent

logger = get_logger("handlers.paypal")

ONBOARDING_COMPLETED = "MERCHANT.ONBOARDING.COMPLETED"
CONSENT_REVOKED = "MERCHANT.PARTNER-CONSENT.REVOKED"
CAPTURE_COMPLETED = "PAYMENT.CAPTURE.COMPLETED"
CAPTURE_DENIED = "PAYMENT.CAPTURE.DENIED"
ORDER_APPROVED = "CHECKOUT.ORDER.APPROVED"


class PayPalEventService(Protocol):
    """Merchant and order updates driven by PayPal events."""

    async def complete_onboarding(self, paypal_merchant_id: str, tracking_id: str | None) -> None: ...

    async def revoke_consent(self, paypal_merchant_id: str) -> None: ...

    async def capture_completed(self, order_id: str, capture_id: str | None) -> None: ...

    async def capture_denied(self, order_id: str) -> None: ...

    async def order_approved(self, order_id: str) -> None: ...


class PayPalHandlers:
    def __init__(self, service: PayPalEventService) -> None:
        self.service = service

    def _merchant_id(self, event: PayPalEvent) -> str | None:
        merchant_id = event.resource.merchant_id
        if not merchant_id:
            logger.warning(
                f"No merchant_id in {event.event_type} event",
                extra={"event_id": event.id, "event_type": event.event_type},
            )
        return merchant_id

    def _order_id(self, event: PayPalEvent) -> str | None:
        order_id = event.resource.order_id
        if not order_id:
            logger.warning(
                f"No reference_id in {event.event_type} event",
                extra={"event_id": event.id, "event_type": event.event_type},
            )
        return order_id

    async def onboarding_completed(self, resource_id: str, event: PayPalEvent) -> None:
        merchant_id = self._merchant_id(event)
        if merchant_id:
            await self.service.complete_onboarding(merchant_id, event.resource.tracking_id)

    async def consent_revoked(self, resource_id: str, event: PayPalEvent) -> None:
        merchant_id = self._merchant_id(event)
        if merchant_id:
            await self.service.revoke_consent(merchant_id)

    async def capture_completed(self, resource_id: str, event: PayPalEvent) -> None:
        order_id = self._order_id(event)
        if order_id:
            await self.service.capture_completed(order_id, event.resource.id)

    async def capture_denied(self, resource_id: str, event: PayPalEvent) -> None:
        order_id = self._order_id(event)
        if order_id:
            await self.service.capture_denied(order_id)

    async def order_approved(self, resource_id: str, event: PayPalEvent) -> None:
        order_id = self._order_id(event)
        if order_id:
            await self.service.order_approved(order_id)


def register(registry: HandlerRegistry, service: PayPalEventService) -> None:
    handlers = PayPalHandlers(service)
    registry.register(ONBOARDING_COMPLETED, handlers.onboarding_completed, PayPalEvent)
    registry.register(CONSENT_REVOKED, handlers.consent_revoked, PayPalEvent)
    registry.register(CAPTURE_COMPLETED, handlers.capture_completed, PayPalEvent)
    registry.register(CAPTURE_DENIED, handlers.capture_denied, PayPalEvent)
    registry.register(ORDER_APPROVED, handlers.order_approved, PayPalEvent)
