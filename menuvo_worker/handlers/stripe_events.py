"""Stripe event handlers.

Handlers decode the stored event and hand off to a ``StripeEventService``.
Delivery is at-least-once, so the service must key its writes on the Stripe
object ids it receives.
"""

from typing import Protocol

from menuvo_worker.core.logging import get_logger
from menuvo_worker.core.registry import HandlerRegistry, PermanentHandlerError
from menuvo_worker.handlers.payloads import StripeSnapshotEvent, StripeThinEvent

logger = get_logger("handlers.stripe")

CHECKOUT_COMPLETED = "checkout.session.completed"
CHECKOUT_EXPIRED = "checkout.session.expired"
ACCOUNT_UPDATED = "account.updated"
V2_ACCOUNT_REQUIREMENTS_UPDATED = "v2.core.account[requirements].updated"
V2_ACCOUNT_CAPABILITY_UPDATED = (
    "v2.core.account[configuration.merchant].capability_status_updated"
)


class StripeEventService(Protocol):
    """Payment-side business logic invoked by Stripe handlers."""

    async def complete_checkout(self, order_id: str, session_id: str, account_id: str | None) -> None: ...

    async def expire_checkout(self, order_id: str, session_id: str) -> None: ...

    async def sync_account(self, account_id: str) -> None: ...


class StripeHandlers:
    def __init__(self, service: StripeEventService) -> None:
        self.service = service

    async def checkout_completed(self, session_id: str, event: StripeSnapshotEvent) -> None:
        session = event.data.object
        order_id = session.metadata.get("orderId")
        if not order_id:
            raise PermanentHandlerError(f"checkout session {session_id} has no orderId metadata")
        await self.service.complete_checkout(str(order_id), session.id, event.account)

    async def checkout_expired(self, session_id: str, event: StripeSnapshotEvent) -> None:
        session = event.data.object
        order_id = session.metadata.get("orderId")
        if not order_id:
            # Nothing to release for sessions we did not create.
            logger.info(f"Expired session {session_id} has no orderId, ignoring")
            return
        await self.service.expire_checkout(str(order_id), session.id)

    async def account_updated(self, account_id: str, event: StripeSnapshotEvent) -> None:
        await self.service.sync_account(event.data.object.id)

    async def v2_account_changed(self, account_id: str, event: StripeThinEvent) -> None:
        if event.related_object is None:
            raise PermanentHandlerError(f"thin event {event.id} has no related_object")
        await self.service.sync_account(event.related_object.id)


def register(registry: HandlerRegistry, service: StripeEventService) -> None:
    handlers = StripeHandlers(service)
    registry.register(CHECKOUT_COMPLETED, handlers.checkout_completed, StripeSnapshotEvent)
    registry.register(CHECKOUT_EXPIRED, handlers.checkout_expired, StripeSnapshotEvent)
    registry.register(ACCOUNT_UPDATED, handlers.account_updated, StripeSnapshotEvent)
    registry.register(V2_ACCOUNT_REQUIREMENTS_UPDATED, handlers.v2_account_changed, StripeThinEvent)
    registry.register(V2_ACCOUNT_CAPABILITY_UPDATED, handlers.v2_account_changed, StripeThinEvent)
