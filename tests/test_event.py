"""Tests for the EventRecord model and status transitions."""

from datetime import UTC, datetime

import pytest
from hypothesis import given
from hypothesis import strategies as st
from pydantic import ValidationError

from menuvo_worker.core.event import (
    MAX_PAYLOAD_SIZE,
    EventRecord,
    IngestMetadata,
    ProcessingStatus,
    can_transition,
)
from tests.conftest import valid_event_ids, valid_payloads


@given(event_id=valid_event_ids(), payload=valid_payloads())
def test_new_record_starts_pending(event_id: str, payload: dict):
    record = EventRecord.new(event_id, "payment.confirmed", payload)

    assert record.id == event_id
    assert record.processing_status == ProcessingStatus.PENDING
    assert record.retry_count == 0
    assert record.payload == payload
    assert record.received_at.tzinfo is not None


@given(whitespace=st.sampled_from(["", " ", "\t", "\n", "  \t\n"]))
def test_blank_id_or_type_rejected(whitespace: str):
    with pytest.raises(ValidationError):
        EventRecord.new(whitespace, "payment.confirmed", {})
    with pytest.raises(ValidationError):
        EventRecord.new("evt_1", whitespace, {})


def test_id_is_stripped():
    record = EventRecord.new("  evt_1  ", "payment.confirmed", {})
    assert record.id == "evt_1"


def test_payload_must_be_json_serializable():
    with pytest.raises(ValidationError, match="JSON-serializable"):
        EventRecord.new("evt_1", "payment.confirmed", {"when": datetime.now(UTC)})


def test_payload_size_limit():
    big = {"blob": "x" * (MAX_PAYLOAD_SIZE + 1)}
    with pytest.raises(ValidationError, match="maximum size"):
        EventRecord.new("evt_1", "payment.confirmed", big)


def test_record_is_frozen():
    record = EventRecord.new("evt_1", "payment.confirmed", {})
    with pytest.raises(ValidationError):
        record.retry_count = 5


def test_metadata_is_copied_onto_record():
    meta = IngestMetadata(
        source_account_id="acct_1",
        resource_id="cs_1",
        resource_type="checkout.session",
        api_version="2024-06-20",
    )
    record = EventRecord.new("evt_1", "checkout.session.completed", {}, meta)

    assert record.source_account_id == "acct_1"
    assert record.resource_id == "cs_1"
    assert record.dispatch_resource_id == "cs_1"
    assert record.api_version == "2024-06-20"


def test_dispatch_resource_id_falls_back_to_event_id():
    record = EventRecord.new("evt_1", "payment.confirmed", {})
    assert record.dispatch_resource_id == "evt_1"


class TestTransitions:
    @pytest.mark.parametrize(
        "current,target",
        [
            (ProcessingStatus.PENDING, ProcessingStatus.PROCESSING),
            (ProcessingStatus.PROCESSING, ProcessingStatus.PROCESSED),
            (ProcessingStatus.PROCESSING, ProcessingStatus.PENDING),
            (ProcessingStatus.PROCESSING, ProcessingStatus.PROCESSING),
            (ProcessingStatus.PROCESSING, ProcessingStatus.FAILED),
            (ProcessingStatus.PENDING, ProcessingStatus.FAILED),
        ],
    )
    def test_allowed(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize("terminal", [ProcessingStatus.PROCESSED, ProcessingStatus.FAILED])
    @pytest.mark.parametrize("target", list(ProcessingStatus))
    def test_terminal_statuses_never_change(self, terminal, target):
        assert terminal.is_terminal
        assert not can_transition(terminal, target)

    def test_pending_cannot_repeat(self):
        assert not can_transition(ProcessingStatus.PENDING, ProcessingStatus.PENDING)
