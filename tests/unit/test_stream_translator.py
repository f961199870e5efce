"""
Unit tests for the change stream translator.
"""
import asyncio

import pytest
from unittest.mock import AsyncMock

from internal.domain.change import ChangeKind
from internal.domain.errors import EventPublishError
from internal.domain.events import EventType
from internal.domain.value_objects import SequenceToken
from internal.infrastructure.memory import InMemoryEventBus
from internal.usecase.translate_changes import (
    BatchResult,
    RecordOutcome,
    RecordResult,
    StreamTranslator,
)


class FlakyEventBus(InMemoryEventBus):
    """Bus failing the first publish of chosen tokens."""

    def __init__(self, fail_once_for):
        super().__init__()
        self._fail_once_for = set(fail_once_for)

    async def publish(self, event):
        if event.source_sequence_token in self._fail_once_for:
            self._fail_once_for.discard(event.source_sequence_token)
            self.attempts += 1
            raise EventPublishError(event.event_type.value, "broker unavailable")
        await super().publish(event)


class TestStreamTranslator:
    """Tests for StreamTranslator."""

    @pytest.mark.asyncio
    async def test_translates_every_kind(self, translator, event_bus, make_record, make_product):
        """Test that each record kind produces its event."""
        old, new = make_product(), make_product(price="5.00")
        records = [
            make_record(ChangeKind.INSERT, token="1", new=old),
            make_record(ChangeKind.MODIFY, token="2", old=old, new=new),
            make_record(ChangeKind.REMOVE, token="3", old=new),
        ]

        batch = await translator.translate(records)

        assert batch.succeeded_ids == [r.record_id for r in records]
        assert [e.event_type for e in event_bus.published] == [
            EventType.PRODUCT_CREATED,
            EventType.PRODUCT_UPDATED,
            EventType.PRODUCT_DELETED,
        ]
        assert batch.batch_item_failures() == {"batchItemFailures": []}

    @pytest.mark.asyncio
    async def test_redelivered_batch_publishes_once(
        self, translator, event_bus, make_record, make_product
    ):
        """Test that redelivering a batch does not publish twice."""
        records = [
            make_record(ChangeKind.INSERT, key="p1", token="1", new=make_product("p1")),
            make_record(ChangeKind.INSERT, key="p2", token="2", new=make_product("p2")),
        ]

        await translator.translate(records)
        second = await translator.translate(records)

        assert len(event_bus.published) == 2
        assert second.succeeded_ids == [r.record_id for r in records]
        assert all(r.reason == "duplicate" for r in second.results)
        assert second.events == []

    @pytest.mark.asyncio
    async def test_second_publish_failure_reports_only_second(self, watermarks, make_record, make_product):
        """Test partial failure reporting and retry without republishing."""
        bus = FlakyEventBus(fail_once_for={"2"})
        translator = StreamTranslator(event_bus=bus, watermarks=watermarks)
        records = [
            make_record(ChangeKind.INSERT, key="a", token="1", new=make_product("a")),
            make_record(ChangeKind.INSERT, key="b", token="2", new=make_product("b")),
            make_record(ChangeKind.INSERT, key="c", token="3", new=make_product("c")),
        ]

        first = await translator.translate(records)

        assert first.failed_ids == [records[1].record_id]
        assert first.batch_item_failures() == {
            "batchItemFailures": [{"itemIdentifier": records[1].record_id}]
        }
        assert [e.product_id for e in bus.published] == ["a", "c"]

        retry = await translator.translate(records)

        assert retry.failed_ids == []
        assert [e.product_id for e in bus.published] == ["a", "c", "b"]
        assert [r.reason for r in retry.results] == ["duplicate", None, "duplicate"]

    @pytest.mark.asyncio
    async def test_failure_blocks_later_records_of_same_key(
        self, watermarks, make_record, make_product
    ):
        """Test that a failed record holds back the rest of its key."""
        bus = FlakyEventBus(fail_once_for={"1"})
        translator = StreamTranslator(event_bus=bus, watermarks=watermarks)
        records = [
            make_record(ChangeKind.INSERT, key="p1", token="1", new=make_product()),
            make_record(ChangeKind.REMOVE, key="p1", token="2", old=make_product()),
            make_record(ChangeKind.INSERT, key="p2", token="3", new=make_product("p2")),
        ]

        first = await translator.translate(records)

        assert first.failed_ids == [records[0].record_id, records[1].record_id]
        assert first.results[1].reason == "blocked"
        assert [e.product_id for e in bus.published] == ["p2"]

        await translator.translate(records)

        assert [
            (e.product_id, e.event_type) for e in bus.published
        ] == [
            ("p2", EventType.PRODUCT_CREATED),
            ("p1", EventType.PRODUCT_CREATED),
            ("p1", EventType.PRODUCT_DELETED),
        ]

    @pytest.mark.asyncio
    async def test_same_key_published_in_delivery_order(
        self, translator, event_bus, watermarks, make_record, make_product
    ):
        """Test per-key ordering."""
        records = [
            make_record(ChangeKind.INSERT, token="1", new=make_product(price="1")),
            make_record(ChangeKind.MODIFY, token="2", old=make_product(price="1"), new=make_product(price="2")),
            make_record(ChangeKind.MODIFY, token="3", old=make_product(price="2"), new=make_product(price="3")),
        ]

        await translator.translate(records)

        assert [e.source_sequence_token for e in event_bus.published] == ["1", "2", "3"]
        assert await watermarks.get("p1") == SequenceToken("3")

    @pytest.mark.asyncio
    async def test_malformed_record_is_isolated(self, translator, event_bus, make_record, make_product):
        """Test that a malformed record does not fail the batch."""
        records = [
            make_record(ChangeKind.INSERT, key="p1", token="1"),  # no new image
            make_record(ChangeKind.INSERT, key="p2", token="2", new=make_product("p2")),
        ]

        batch = await translator.translate(records)

        assert batch.malformed_ids == [records[0].record_id]
        assert batch.succeeded_ids == [records[1].record_id]
        assert batch.failed_ids == []
        assert len(event_bus.published) == 1

    @pytest.mark.asyncio
    async def test_unchanged_modify_suppressed(self, translator, event_bus, watermarks, make_record, make_product):
        """Test that an identical MODIFY is acknowledged without an event."""
        record = make_record(ChangeKind.MODIFY, token="5", old=make_product(), new=make_product())

        batch = await translator.translate([record])

        assert batch.results[0].outcome == RecordOutcome.SUCCEEDED
        assert batch.results[0].reason == "unchanged"
        assert event_bus.published == []
        assert await watermarks.get("p1") == SequenceToken("5")

    @pytest.mark.asyncio
    async def test_unchanged_modify_published_when_not_suppressed(
        self, event_bus, watermarks, make_record, make_product
    ):
        """Test the policy switch for identical MODIFY records."""
        translator = StreamTranslator(
            event_bus=event_bus,
            watermarks=watermarks,
            suppress_unchanged=False,
        )
        record = make_record(ChangeKind.MODIFY, token="5", old=make_product(), new=make_product())

        batch = await translator.translate([record])

        assert batch.succeeded_ids == [record.record_id]
        assert [e.event_type for e in event_bus.published] == [EventType.PRODUCT_UPDATED]

    @pytest.mark.asyncio
    async def test_older_token_than_watermark_is_duplicate(
        self, translator, event_bus, watermarks, make_record, make_product
    ):
        """Test that a record behind the watermark is skipped."""
        await watermarks.advance("p1", SequenceToken("10"))

        batch = await translator.translate(
            [make_record(ChangeKind.INSERT, token="9", new=make_product())]
        )

        assert batch.results[0].reason == "duplicate"
        assert event_bus.published == []

    @pytest.mark.asyncio
    async def test_watermark_failure_reports_failed(self, event_bus, make_record, make_product):
        """Test that an unreachable watermark store fails the record."""
        watermarks = AsyncMock()
        watermarks.get.side_effect = ConnectionError("down")
        translator = StreamTranslator(event_bus=event_bus, watermarks=watermarks)

        batch = await translator.translate(
            [make_record(ChangeKind.INSERT, new=make_product())]
        )

        assert batch.results[0].outcome == RecordOutcome.FAILED
        assert batch.results[0].reason == "watermark_unavailable"
        assert event_bus.published == []

    @pytest.mark.asyncio
    async def test_unexpected_bus_error_reports_failed(self, watermarks, make_record, make_product):
        """Test that an unexpected exception never counts as success."""
        bus = AsyncMock()
        bus.publish.side_effect = RuntimeError("boom")
        translator = StreamTranslator(event_bus=bus, watermarks=watermarks)

        batch = await translator.translate(
            [make_record(ChangeKind.INSERT, new=make_product())]
        )

        assert batch.has_failures
        assert batch.results[0].reason.startswith("unexpected")
        assert await watermarks.get("p1") is None

    @pytest.mark.asyncio
    async def test_publish_timeout_reports_failed(self, watermarks, make_record, make_product):
        """Test that a hanging publish is cut off."""
        bus = AsyncMock()

        async def hang(event):
            await asyncio.sleep(10)

        bus.publish.side_effect = hang
        translator = StreamTranslator(event_bus=bus, watermarks=watermarks, publish_timeout=0.01)

        batch = await translator.translate(
            [make_record(ChangeKind.INSERT, new=make_product())]
        )

        assert batch.results[0].reason == "publish_timeout"

    @pytest.mark.asyncio
    async def test_batch_timeout_leaves_unfinished_records_failed(
        self, watermarks, make_record, make_product
    ):
        """Test that records not confirmed before the deadline are redelivered."""
        bus = AsyncMock()

        async def slow(event):
            if event.product_id == "slow":
                await asyncio.sleep(10)

        bus.publish.side_effect = slow
        translator = StreamTranslator(event_bus=bus, watermarks=watermarks, publish_timeout=30)
        records = [
            make_record(ChangeKind.INSERT, key="slow", token="1", new=make_product("slow")),
            make_record(ChangeKind.INSERT, key="fast", token="2", new=make_product("fast")),
        ]

        batch = await translator.translate(records, timeout=0.05)

        assert batch.failed_ids == [records[0].record_id]
        assert batch.results[0].reason == "not_processed"
        assert batch.succeeded_ids == [records[1].record_id]

    @pytest.mark.asyncio
    async def test_empty_batch(self, translator):
        """Test that an empty batch is a no-op."""
        batch = await translator.translate([])

        assert batch.results == []
        assert not batch.has_failures


class TestBatchResult:
    """Tests for BatchResult reporting."""

    def test_counts_and_ids(self):
        """Test aggregation of record outcomes."""
        batch = BatchResult(
            results=[
                RecordResult(record_id="1", outcome=RecordOutcome.SUCCEEDED),
                RecordResult(record_id="2", outcome=RecordOutcome.FAILED),
                RecordResult.malformed("3", "bad"),
            ]
        )

        assert batch.counts() == {"succeeded": 1, "failed": 1, "malformed": 1}
        assert batch.failed_ids == ["2"]
        assert batch.malformed_ids == ["3"]
        assert batch.batch_item_failures() == {"batchItemFailures": [{"itemIdentifier": "2"}]}
