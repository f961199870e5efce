"""
Unit tests for the in-memory adapters.
"""
import typing

import pytest

from internal.domain.change import ChangeRecord
from internal.domain.errors import DomainValidationError, EventPublishError
from internal.domain.events import DomainEvent, EventType
from internal.domain.value_objects import SequenceToken
from internal.infrastructure.memory import (
    InMemoryChangeFeed,
    InMemoryEventBus,
    InMemoryProductStore,
    InMemoryWatermarkStore,
)
from internal.usecase.translate_changes import StreamTranslator


class TestInMemoryProductStore:
    """Tests for InMemoryProductStore."""

    @pytest.mark.asyncio
    async def test_returned_products_are_copies(self, store, make_product):
        """Test that callers cannot mutate stored state."""
        await store.put(make_product())

        fetched = await store.get("p1")
        fetched.name = "Changed"

        assert (await store.get("p1")).name == "Widget"

    @pytest.mark.asyncio
    async def test_put_rejects_mutated_invalid_product(self, store, make_product):
        """Test that put validates before writing."""
        product = make_product()
        product.name = ""

        with pytest.raises(DomainValidationError):
            await store.put(product)

        assert store.changes == []

    @pytest.mark.asyncio
    async def test_change_tokens_increase(self, store, make_product):
        """Test that change records carry increasing tokens."""
        await store.put(make_product("a"))
        await store.put(make_product("b"))
        await store.delete("a")

        tokens = [c.token for c in store.changes]
        assert tokens == sorted(tokens)
        assert len(set(tokens)) == 3
        for change in store.changes:
            change.validate()

    @pytest.mark.asyncio
    async def test_drain_and_requeue(self, store, make_product):
        """Test handing over and returning change records."""
        await store.put(make_product("a"))
        drained = store.drain_changes()
        await store.put(make_product("b"))

        store.requeue_changes(drained)

        assert [c.key for c in store.changes] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_invalid_cursor(self, store):
        """Test that an undecodable cursor is rejected."""
        with pytest.raises(DomainValidationError):
            await store.list(cursor="not base64!")

    def test_change_log_annotations_resolve(self):
        """Test that list annotations are not shadowed by the list() method."""
        hints = typing.get_type_hints(InMemoryProductStore.drain_changes)
        assert hints["return"] == list[ChangeRecord]

        hints = typing.get_type_hints(InMemoryProductStore.requeue_changes)
        assert hints["records"] == list[ChangeRecord]


class TestInMemoryEventBus:
    """Tests for InMemoryEventBus."""

    @pytest.mark.asyncio
    async def test_records_and_fails_on_demand(self):
        """Test recording events and configured failures."""
        bus = InMemoryEventBus(fail_for={"p2"})
        ok = DomainEvent(EventType.PRODUCT_DELETED, "p1", "1")
        rejected = DomainEvent(EventType.PRODUCT_DELETED, "p2", "2")

        await bus.publish(ok)
        with pytest.raises(EventPublishError):
            await bus.publish(rejected)

        assert bus.published == [ok]
        assert bus.attempts == 2


class TestInMemoryWatermarkStore:
    """Tests for InMemoryWatermarkStore."""

    @pytest.mark.asyncio
    async def test_never_moves_backwards(self):
        """Test monotonic watermarks."""
        marks = InMemoryWatermarkStore()
        await marks.advance("p1", SequenceToken("5"))
        await marks.advance("p1", SequenceToken("3"))

        assert await marks.get("p1") == SequenceToken("5")

    @pytest.mark.asyncio
    async def test_evicts_least_recently_used(self):
        """Test the key bound."""
        marks = InMemoryWatermarkStore(max_keys=2)
        await marks.advance("a", SequenceToken("1"))
        await marks.advance("b", SequenceToken("1"))
        await marks.get("a")
        await marks.advance("c", SequenceToken("1"))

        assert len(marks) == 2
        assert await marks.get("b") is None
        assert await marks.get("a") == SequenceToken("1")


class TestInMemoryChangeFeed:
    """Tests for the in-process change relay."""

    @pytest.mark.asyncio
    async def test_store_writes_become_events(self, store, event_bus, translator, make_product):
        """Test the put/delete to event path end to end."""
        feed = InMemoryChangeFeed(store, translator)
        await store.put(make_product())
        await store.put(make_product(price="1.00"))
        await store.delete("p1")

        batch = await feed.poll_once()

        assert batch.counts()["succeeded"] == 3
        assert [e.event_type for e in event_bus.published] == [
            EventType.PRODUCT_CREATED,
            EventType.PRODUCT_UPDATED,
            EventType.PRODUCT_DELETED,
        ]
        assert store.changes == []

    @pytest.mark.asyncio
    async def test_failed_records_are_requeued(self, watermarks, make_product):
        """Test that failed records are retried on the next poll."""
        store = InMemoryProductStore()
        bus = InMemoryEventBus(fail_for={"p1"})
        feed = InMemoryChangeFeed(store, StreamTranslator(bus, watermarks))
        await store.put(make_product("p1"))
        await store.put(make_product("p2"))

        first = await feed.poll_once()

        assert len(first.failed_ids) == 1
        assert [c.key for c in store.changes] == ["p1"]

        bus.fail_for.clear()
        second = await feed.poll_once()

        assert not second.has_failures
        assert sorted(e.product_id for e in bus.published) == ["p1", "p2"]

    @pytest.mark.asyncio
    async def test_empty_log(self, store, translator):
        """Test polling with nothing to relay."""
        batch = await InMemoryChangeFeed(store, translator).poll_once()

        assert batch.results == []
        assert store.changes == []
