"""Tests for Mollie webhook resolution and ingestion."""

import pytest

from menuvo_worker.core.ingestion import Ingestor
from menuvo_worker.providers.base import InvalidWebhookError
from menuvo_worker.providers.mollie import (
    MollieWebhookHandler,
    ResourceFetchError,
    derive_event_id,
    extract_merchant_id,
    get_resource_type,
    payment_event_type,
)
from tests.conftest import QUEUE


class FakeFetcher:
    def __init__(self, payments: dict | None = None, error: Exception | None = None) -> None:
        self.payments = payments or {}
        self.error = error
        self.fetched: list[str] = []

    async def get_payment(self, payment_id: str) -> dict:
        self.fetched.append(payment_id)
        if self.error is not None:
            raise self.error
        return self.payments[payment_id]


def paid_payment(payment_id: str = "tr_abc", **metadata) -> dict:
    return {
        "id": payment_id,
        "status": "paid",
        "sequenceType": "oneoff",
        "metadata": {"orderId": "ord_1", **metadata},
    }


@pytest.mark.parametrize(
    "resource_id,expected",
    [
        ("tr_WDqYK6vllg", "payment"),
        ("sub_rVKGtNd6s3", "subscription"),
        ("re_4qqhO89gsT", "refund"),
        ("mdt_pWUnw6pkBN", "mandate"),
        ("ord_stTC2WHAuS", None),
    ],
)
def test_resource_type_from_prefix(resource_id, expected):
    assert get_resource_type(resource_id) == expected


@pytest.mark.parametrize(
    "metadata,expected",
    [
        ({"merchantId": 42}, "42"),
        ({"merchantId": "42"}, "42"),
        ({"merchantId": ""}, None),
        ({"merchantId": True}, None),
        ({}, None),
        (None, None),
    ],
)
def test_extract_merchant_id(metadata, expected):
    assert extract_merchant_id({"metadata": metadata}) == expected


def test_event_id_includes_state():
    assert payment_event_type({"status": "paid"}) == "payment.paid"
    assert derive_event_id("tr_1", "payment.paid") == "tr_1:payment.paid"


class TestMollieWebhook:
    async def test_payment_is_fetched_and_recorded(self, ingestor: Ingestor, store, transport):
        fetcher = FakeFetcher({"tr_abc": paid_payment(merchantId=7)})
        handler = MollieWebhookHandler(ingestor, fetcher)

        response = await handler.handle({"id": "tr_abc"})

        assert response.event_id == "tr_abc:payment.paid"
        record = await store.get_by_id("tr_abc:payment.paid")
        assert record.type == "payment.paid"
        assert record.resource_id == "tr_abc"
        assert record.source_account_id == "7"
        assert record.payload["status"] == "paid"
        assert await transport.depth(QUEUE) == 1

    async def test_same_state_twice_is_duplicate(self, ingestor: Ingestor, transport):
        handler = MollieWebhookHandler(ingestor, FakeFetcher({"tr_abc": paid_payment()}))
        await handler.handle({"id": "tr_abc"})

        response = await handler.handle({"id": "tr_abc"})

        assert response.duplicate
        assert await transport.depth(QUEUE) == 1

    async def test_new_state_is_new_event(self, ingestor: Ingestor, store):
        fetcher = FakeFetcher({"tr_abc": {**paid_payment(), "status": "open"}})
        handler = MollieWebhookHandler(ingestor, fetcher)
        await handler.handle({"id": "tr_abc"})

        fetcher.payments["tr_abc"] = paid_payment()
        response = await handler.handle({"id": "tr_abc"})

        assert not response.duplicate
        assert len(store) == 2

    async def test_refund_and_subscription_are_references(self, ingestor: Ingestor, store):
        fetcher = FakeFetcher()
        handler = MollieWebhookHandler(ingestor, fetcher)

        await handler.handle({"id": "re_1"})
        await handler.handle({"id": "sub_1"})

        assert (await store.get_by_id("re_1:refund.updated")).payload == {"id": "re_1"}
        assert (await store.get_by_id("sub_1:subscription.updated")).type == "subscription.updated"
        assert fetcher.fetched == []

    @pytest.mark.parametrize("resource_id", ["mdt_1", "ord_1"])
    async def test_mandates_and_unknown_prefixes_are_skipped(self, ingestor: Ingestor, store, resource_id):
        handler = MollieWebhookHandler(ingestor, FakeFetcher())

        response = await handler.handle({"id": resource_id})

        assert response.received and response.skipped
        assert len(store) == 0

    @pytest.mark.parametrize("form", [{}, {"id": ""}, {"id": "   "}])
    async def test_missing_id_rejected(self, ingestor: Ingestor, form):
        handler = MollieWebhookHandler(ingestor, FakeFetcher())

        with pytest.raises(InvalidWebhookError):
            await handler.handle(form)

    async def test_fetch_failure_surfaces(self, ingestor: Ingestor, store):
        handler = MollieWebhookHandler(ingestor, FakeFetcher(error=ConnectionError("api down")))

        with pytest.raises(ResourceFetchError, match="tr_abc"):
            await handler.handle({"id": "tr_abc"})
        assert len(store) == 0
