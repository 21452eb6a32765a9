"""Mollie event handlers."""

from typing import Protocol

from menuvo_worker.core.logging import get_logger
from menuvo_worker.core.registry import HandlerRegistry
from menuvo_worker.handlers.payloads import MolliePayment, MollieResourceRef

logger = get_logger("handlers.mollie")

PAYMENT_STATUSES = ("paid", "failed", "expired", "canceled")


class MollieEventService(Protocol):
    """Payment-side business logic invoked by Mollie handlers."""

    async def update_order_payment(self, order_id: str, payment_id: str, status: str) -> None: ...

    async def start_subscription(self, merchant_id: str, plan: str, mandate_id: str) -> None: ...

    async def sync_refund(self, refund_id: str) -> None: ...

    async def sync_subscription(self, subscription_id: str) -> None: ...


class MollieHandlers:
    def __init__(self, service: MollieEventService) -> None:
        self.service = service

    async def payment_status(self, payment_id: str, payment: MolliePayment) -> None:
        metadata = payment.metadata or {}

        if payment.status == "paid" and payment.sequence_type == "first":
            merchant_id, plan = metadata.get("merchantId"), metadata.get("plan")
            if merchant_id and plan and payment.mandate_id:
                await self.service.start_subscription(str(merchant_id), str(plan), payment.mandate_id)
                return
            logger.warning(
                "Subscription first payment missing merchantId, plan or mandate",
                extra={"resource_id": payment_id},
            )
            return

        if payment.order_id is None:
            logger.info(
                f"Payment {payment_id} is not linked to an order, ignoring",
                extra={"resource_id": payment_id},
            )
            return
        await self.service.update_order_payment(payment.order_id, payment.id, payment.status)

    async def refund_updated(self, refund_id: str, ref: MollieResourceRef) -> None:
        await self.service.sync_refund(ref.id)

    async def subscription_updated(self, subscription_id: str, ref: MollieResourceRef) -> None:
        await self.service.sync_subscription(ref.id)


def register(registry: HandlerRegistry, service: MollieEventService) -> None:
    handlers = MollieHandlers(service)
    for status in PAYMENT_STATUSES:
        registry.register(f"payment.{status}", handlers.payment_status, MolliePayment)
    registry.register("refund.updated", handlers.refund_updated, MollieResourceRef)
    registry.register("subscription.updated", handlers.subscription_updated, MollieResourceRef)
