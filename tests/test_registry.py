"""Tests for HandlerRegistry."""

import pytest
from pydantic import BaseModel

from menuvo_worker.core.registry import (
    HandlerRegistrationError,
    HandlerRegistry,
    PermanentHandlerError,
)
from tests.conftest import RecordingHandler


class OrderPayload(BaseModel):
    order_id: str


class TestRegistration:
    def test_register_and_lookup(self, registry: HandlerRegistry):
        handler = RecordingHandler()
        registry.register("payment.confirmed", handler)

        assert "payment.confirmed" in registry
        assert len(registry) == 1
        assert registry.get("payment.confirmed").handler is handler
        assert registry.get("payment.refunded") is None

    def test_duplicate_registration_rejected(self, registry: HandlerRegistry):
        registry.register("payment.confirmed", RecordingHandler())

        with pytest.raises(HandlerRegistrationError, match="already registered"):
            registry.register("payment.confirmed", RecordingHandler())

    @pytest.mark.parametrize("event_type", ["", "   "])
    def test_blank_event_type_rejected(self, registry: HandlerRegistry, event_type: str):
        with pytest.raises(HandlerRegistrationError):
            registry.register(event_type, RecordingHandler())

    def test_non_callable_rejected(self, registry: HandlerRegistry):
        with pytest.raises(HandlerRegistrationError, match="callable"):
            registry.register("payment.confirmed", "not a handler")

    def test_decorator_registers(self, registry: HandlerRegistry):
        @registry.handles("order.created")
        async def on_order(resource_id, payload):
            pass

        assert registry.get("order.created").handler is on_order
        assert registry.event_types() == ["order.created"]


class TestDispatch:
    async def test_dispatch_passes_resource_id_and_payload(self, registry: HandlerRegistry):
        handler = RecordingHandler()
        registry.register("payment.confirmed", handler)

        await registry.dispatch("payment.confirmed", "pay_1", {"amount": 10})

        assert handler.calls == [("pay_1", {"amount": 10})]

    def test_unknown_type_returns_none(self, registry: HandlerRegistry):
        assert registry.dispatch("nobody.listens", "x", {}) is None

    async def test_payload_model_decodes(self, registry: HandlerRegistry):
        handler = RecordingHandler()
        registry.register("order.created", handler, payload_model=OrderPayload)

        await registry.dispatch("order.created", "ord_1", {"order_id": "ord_1"})

        (_, decoded), = handler.calls
        assert isinstance(decoded, OrderPayload)
        assert decoded.order_id == "ord_1"

    def test_payload_model_mismatch_is_permanent(self, registry: HandlerRegistry):
        registry.register("order.created", RecordingHandler(), payload_model=OrderPayload)

        with pytest.raises(PermanentHandlerError, match="OrderPayload"):
            registry.dispatch("order.created", "ord_1", {"wrong": True})

    async def test_sync_handler_is_awaitable(self, registry: HandlerRegistry):
        seen = []
        registry.register("order.created", lambda rid, payload: seen.append(rid))

        outcome = registry.dispatch("order.created", "ord_1", {})
        await outcome

        assert seen == ["ord_1"]
