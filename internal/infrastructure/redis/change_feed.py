"""
Redis Streams change feed.

Reads the change stream written by RedisProductStore through a consumer
group and hands each batch to the StreamTranslator. Entries are acknowledged
only once the translator reports them succeeded or malformed; failed entries
stay pending and are read again on the next cycle.
"""
import asyncio
from datetime import datetime, timezone
from typing import Any, Optional

import redis.asyncio as aioredis
from redis.asyncio import Redis

from internal.domain.change import ChangeKind, ChangeRecord
from internal.domain.errors import DomainValidationError, MalformedChangeRecordError
from internal.domain.value_objects import SequenceToken
from internal.infrastructure.metrics import record_batch
from internal.usecase.translate_changes import BatchResult, RecordResult, StreamTranslator
from pkg.logger.logger import get_logger

from .codec import decode_product


logger = get_logger(__name__)


FEED_SOURCE = "redis_stream"


class ConcurrentConsumerError(RuntimeError):
    """Raised when another live consumer reads the same group."""

    def __init__(self, group: str, consumer: Optional[str]) -> None:
        self.group = group
        self.consumer = consumer
        super().__init__(f"Consumer '{consumer}' is active in group '{group}'")


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def _field(fields: dict, name: str) -> Any:
    if name in fields:
        return fields[name]
    return fields.get(name.encode("utf-8"))


def parse_stream_entry(entry_id: Any, fields: Optional[dict]) -> ChangeRecord:
    """
    Build a change record from one change stream entry.

    Args:
        entry_id: Stream entry id, also used as the sequence token.
        fields: Entry fields ``kind``, ``key``, ``old`` and ``new``.

    Returns:
        Change record, not yet validated.

    Raises:
        MalformedChangeRecordError: If the entry cannot be decoded.
    """
    record_id = _text(entry_id) or ""
    if not fields:
        raise MalformedChangeRecordError(record_id, "entry has no fields")

    try:
        kind = ChangeKind(_text(_field(fields, "kind")))
    except ValueError:
        raise MalformedChangeRecordError(record_id, f"unknown kind {_field(fields, 'kind')!r}")

    try:
        old_image = decode_product(_field(fields, "old"))
        new_image = decode_product(_field(fields, "new"))
    except (ValueError, DomainValidationError) as e:
        raise MalformedChangeRecordError(record_id, str(e))

    try:
        arrival_ms = SequenceToken(record_id).parts[0]
        arrival_time = datetime.fromtimestamp(arrival_ms / 1000, tz=timezone.utc)
    except (DomainValidationError, OverflowError, OSError, ValueError):
        arrival_time = datetime.now(timezone.utc)

    return ChangeRecord(
        record_id=record_id,
        kind=kind,
        key=_text(_field(fields, "key")) or "",
        sequence_token=record_id,
        old_image=old_image,
        new_image=new_image,
        arrival_time=arrival_time,
    )


class RedisChangeFeed:
    """
    Consumer-group reader of the product change stream.

    Each cycle reads one source, in this order of preference: this
    consumer's own pending entries, entries claimed from consumers idle
    longer than ``claim_idle_ms``, newly appended entries. New entries wait
    until the pending backlog is drained, so a failed record stays ahead of
    later records of the same product. One live consumer per group.
    """

    def __init__(
        self,
        client: Redis,
        translator: StreamTranslator,
        stream_key: str,
        group: str = "product-events-publisher",
        consumer: str = "worker-1",
        batch_size: int = 100,
        block_ms: int = 1000,
        claim_idle_ms: int = 60_000,
        retry_backoff: float = 1.0,
        batch_timeout: Optional[float] = None,
    ) -> None:
        """
        Initialize the change feed.

        Args:
            client: Connected Redis client.
            translator: Translator receiving each batch.
            stream_key: Change stream key.
            group: Consumer group name.
            consumer: This consumer's name within the group.
            batch_size: Maximum entries per read.
            block_ms: How long to wait for new entries.
            claim_idle_ms: Idle time after which another consumer's
                pending entries are claimed.
            retry_backoff: Seconds to wait after a batch with failures.
            batch_timeout: Seconds allowed to translate one batch.
        """
        self._redis = client
        self._translator = translator
        self._stream_key = stream_key
        self._group = group
        self._consumer = consumer
        self._batch_size = batch_size
        self._block_ms = block_ms
        self._claim_idle_ms = claim_idle_ms
        self._retry_backoff = retry_backoff
        self._batch_timeout = batch_timeout
        self._running = False

    async def ensure_group(self) -> None:
        """Create the consumer group, ignoring BUSYGROUP if it exists."""
        try:
            await self._redis.xgroup_create(
                self._stream_key,
                self._group,
                id="0",
                mkstream=True,
            )
            logger.info("Consumer group created", stream=self._stream_key, group=self._group)
        except aioredis.ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise

    async def _read(self, stream_id: str, block: Optional[int] = None) -> list:
        response = await self._redis.xreadgroup(
            groupname=self._group,
            consumername=self._consumer,
            streams={self._stream_key: stream_id},
            count=self._batch_size,
            block=block,
        )
        entries = []
        for _stream, messages in response or []:
            entries.extend(messages)
        return entries

    async def _claim(self) -> list:
        response = await self._redis.xautoclaim(
            self._stream_key,
            self._group,
            self._consumer,
            min_idle_time=self._claim_idle_ms,
            start_id="0-0",
            count=self._batch_size,
        )
        if not response or len(response) < 2:
            return []
        return list(response[1])

    async def ensure_exclusive(self) -> None:
        """
        Refuse to run next to another live consumer of the group.

        Per-product ordering relies on a single reader: a second consumer
        could publish a newer change of a product while an older one is
        still pending here. Consumers idle longer than ``claim_idle_ms``
        count as dead; their entries are claimed.

        Raises:
            ConcurrentConsumerError: If another consumer is active.
        """
        consumers = await self._redis.xinfo_consumers(self._stream_key, self._group)
        for consumer in consumers:
            name = _text(consumer.get("name"))
            if name != self._consumer and int(consumer.get("idle", 0)) < self._claim_idle_ms:
                raise ConcurrentConsumerError(self._group, name)

    async def fetch(self) -> list[tuple[str, Optional[dict]]]:
        """
        Read the next batch of entries.

        This consumer's pending entries are drained first, then entries
        claimed from dead consumers, and only then new ones, so an entry is
        never handled after a newer entry of the stream.

        Returns:
            Distinct ``(entry_id, fields)`` pairs in stream id order.
        """
        entries = await self._read("0")
        if not entries:
            entries = await self._claim()
        if not entries:
            entries = await self._read(">", block=self._block_ms)

        distinct: dict[str, Optional[dict]] = {}
        for entry_id, fields in entries:
            distinct.setdefault(_text(entry_id), fields)
        return sorted(distinct.items(), key=lambda item: _sort_key(item[0]))

    async def poll_once(self) -> BatchResult:
        """
        Fetch, translate and acknowledge one batch.

        Returns:
            Per-entry outcomes, in stream id order.
        """
        entries = await self.fetch()
        if not entries:
            return BatchResult()

        records: list[ChangeRecord] = []
        slots: list[Optional[RecordResult]] = []
        for entry_id, fields in entries:
            try:
                records.append(parse_stream_entry(entry_id, fields))
                slots.append(None)
            except MalformedChangeRecordError as e:
                logger.error("Undecodable change stream entry", entry_id=entry_id, reason=e.reason)
                slots.append(RecordResult.malformed(entry_id, e.reason))

        translated = await self._translator.translate(records, timeout=self._batch_timeout)
        remaining = iter(translated.results)
        batch = BatchResult(results=[s if s is not None else next(remaining) for s in slots])

        done = batch.succeeded_ids + batch.malformed_ids
        if done:
            await self._redis.xack(self._stream_key, self._group, *done)

        record_batch(FEED_SOURCE, batch.counts())
        if batch.has_failures:
            logger.warning(
                "Change entries left pending for retry",
                stream=self._stream_key,
                failed=len(batch.failed_ids),
            )
        return batch

    async def run(self) -> None:
        """Poll until stopped."""
        await self.ensure_group()
        await self.ensure_exclusive()
        self._running = True
        logger.info(
            "Change feed started",
            stream=self._stream_key,
            group=self._group,
            consumer=self._consumer,
        )

        while self._running:
            try:
                batch = await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception("Change feed cycle failed", error=str(e))
                await asyncio.sleep(self._retry_backoff)
                continue

            if batch.has_failures:
                await asyncio.sleep(self._retry_backoff)

        logger.info("Change feed stopped", stream=self._stream_key)

    def stop(self) -> None:
        """Stop after the current cycle."""
        self._running = False


def _sort_key(entry_id: str) -> tuple[int, ...]:
    try:
        return SequenceToken(entry_id).parts
    except DomainValidationError:
        return ()
