"""
Change Stream Translator.

Turns a batch of change records from the store's change feed into domain
events on the event bus, reporting a per-record outcome so the feed only
redelivers the records that actually failed.
"""
import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence

from internal.domain.change import ChangeRecord
from internal.domain.errors import EventPublishError, MalformedChangeRecordError
from internal.domain.events import DomainEvent, map_change_record
from internal.domain.value_objects import SequenceToken
from internal.usecase.ports import EventBus, WatermarkStore
from pkg.logger.logger import get_logger


logger = get_logger(__name__)


class RecordOutcome(str, Enum):
    """Terminal state of one record within a delivery attempt."""

    SUCCEEDED = "succeeded"  # published, or nothing left to publish
    FAILED = "failed"  # retryable, must be redelivered
    MALFORMED = "malformed"  # permanent, never retried


@dataclass
class RecordResult:
    """
    Outcome of one change record.

    Attributes:
        record_id: Feed identifier of the record.
        outcome: Succeeded, failed or malformed.
        key: Product id, when the record carried one.
        event: The event published for this record, if any.
        reason: Why the record was skipped or failed.
    """
    record_id: str
    outcome: RecordOutcome
    key: Optional[str] = None
    event: Optional[DomainEvent] = None
    reason: Optional[str] = None

    @classmethod
    def malformed(cls, record_id: str, reason: str, key: Optional[str] = None) -> "RecordResult":
        """Result for a record that can never be translated."""
        return cls(record_id=record_id, outcome=RecordOutcome.MALFORMED, key=key, reason=reason)


@dataclass
class BatchResult:
    """
    Per-record outcomes of a batch, in delivery order.

    Attributes:
        results: One result per input record.
    """
    results: list[RecordResult] = field(default_factory=list)

    def _ids(self, outcome: RecordOutcome) -> list[str]:
        return [r.record_id for r in self.results if r.outcome == outcome]

    @property
    def failed_ids(self) -> list[str]:
        """Records the feed must redeliver."""
        return self._ids(RecordOutcome.FAILED)

    @property
    def malformed_ids(self) -> list[str]:
        """Records skipped for good."""
        return self._ids(RecordOutcome.MALFORMED)

    @property
    def succeeded_ids(self) -> list[str]:
        """Records fully handled."""
        return self._ids(RecordOutcome.SUCCEEDED)

    @property
    def events(self) -> list[DomainEvent]:
        """Events published during this attempt."""
        return [r.event for r in self.results if r.event is not None]

    @property
    def has_failures(self) -> bool:
        """True when at least one record needs redelivery."""
        return any(r.outcome == RecordOutcome.FAILED for r in self.results)

    def batch_item_failures(self) -> dict:
        """
        Partial batch failure report.

        Returns:
            ``{"batchItemFailures": [{"itemIdentifier": id}, ...]}``
        """
        return {
            "batchItemFailures": [{"itemIdentifier": i} for i in self.failed_ids]
        }

    def counts(self) -> dict[str, int]:
        """Number of records per outcome."""
        return {o.value: len(self._ids(o)) for o in RecordOutcome}


class StreamTranslator:
    """
    Translates change records into domain events.

    Records of the same key are handled strictly in delivery order; distinct
    keys are handled concurrently. A key's first failed record blocks the
    rest of that key in the batch, so a redelivery can neither reorder its
    events nor mistake an earlier record for a duplicate.
    """

    def __init__(
        self,
        event_bus: EventBus,
        watermarks: WatermarkStore,
        suppress_unchanged: bool = True,
        max_concurrency: int = 16,
        publish_timeout: float = 5.0,
    ) -> None:
        """
        Initialize the translator.

        Args:
            event_bus: Where events are published.
            watermarks: Last translated token per product id.
            suppress_unchanged: Skip MODIFY records whose images are equal.
            max_concurrency: Keys translated at the same time.
            publish_timeout: Seconds allowed for one publish call.
        """
        self._event_bus = event_bus
        self._watermarks = watermarks
        self._suppress_unchanged = suppress_unchanged
        self._max_concurrency = max_concurrency
        self._publish_timeout = publish_timeout

    async def translate(
        self,
        records: Sequence[ChangeRecord],
        timeout: Optional[float] = None,
    ) -> BatchResult:
        """
        Translate a batch of change records.

        Every record starts out failed and only a confirmed outcome replaces
        that, so records left unfinished by a timeout are redelivered.

        Args:
            records: Batch in delivery order.
            timeout: Seconds allowed for the whole batch.

        Returns:
            Per-record outcomes.
        """
        results = [
            RecordResult(
                record_id=r.record_id,
                outcome=RecordOutcome.FAILED,
                key=r.key,
                reason="not_processed",
            )
            for r in records
        ]

        keys: dict[str, list[int]] = {}
        for index, record in enumerate(records):
            try:
                record.validate()
            except MalformedChangeRecordError as e:
                logger.error(
                    "Skipping malformed change record",
                    record_id=record.record_id,
                    reason=e.reason,
                )
                results[index] = RecordResult.malformed(record.record_id, e.reason, record.key)
                continue
            keys.setdefault(record.key, []).append(index)

        if keys:
            semaphore = asyncio.Semaphore(self._max_concurrency)
            tasks = [
                asyncio.create_task(self._translate_key(indices, records, results, semaphore))
                for indices in keys.values()
            ]
            try:
                _, pending = await asyncio.wait(tasks, timeout=timeout)
            except asyncio.CancelledError:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                raise

            if pending:
                logger.warning(
                    "Batch timed out, unfinished records reported as failed",
                    pending_keys=len(pending),
                    timeout=timeout,
                )
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

        batch = BatchResult(results=results)
        logger.info("Change batch translated", records=len(records), **batch.counts())
        return batch

    async def _translate_key(
        self,
        indices: list[int],
        records: Sequence[ChangeRecord],
        results: list[RecordResult],
        semaphore: asyncio.Semaphore,
    ) -> None:
        async with semaphore:
            for position, index in enumerate(indices):
                result = await self._translate_record(records[index])
                results[index] = result
                if result.outcome == RecordOutcome.FAILED:
                    for blocked in indices[position + 1:]:
                        results[blocked] = RecordResult(
                            record_id=records[blocked].record_id,
                            outcome=RecordOutcome.FAILED,
                            key=records[blocked].key,
                            reason="blocked",
                        )
                    return

    async def _translate_record(self, record: ChangeRecord) -> RecordResult:
        token = record.token

        try:
            watermark = await self._watermarks.get(record.key)
        except Exception as e:
            logger.error(
                "Watermark lookup failed",
                record_id=record.record_id,
                product_id=record.key,
                error=str(e),
            )
            return self._failed(record, "watermark_unavailable")

        if watermark is not None and token <= watermark:
            logger.debug(
                "Skipping redelivered change record",
                record_id=record.record_id,
                product_id=record.key,
                sequence_token=record.sequence_token,
            )
            return self._succeeded(record, reason="duplicate")

        event = map_change_record(record, suppress_unchanged=self._suppress_unchanged)
        if event is None:
            await self._advance(record.key, token)
            return self._succeeded(record, reason="unchanged")

        try:
            await asyncio.wait_for(self._event_bus.publish(event), timeout=self._publish_timeout)
        except EventPublishError as e:
            logger.warning(
                "Event publish failed",
                record_id=record.record_id,
                product_id=record.key,
                event_type=event.event_type.value,
                error=e.reason,
            )
            return self._failed(record, e.reason)
        except asyncio.TimeoutError:
            logger.warning(
                "Event publish timed out",
                record_id=record.record_id,
                product_id=record.key,
                timeout=self._publish_timeout,
            )
            return self._failed(record, "publish_timeout")
        except Exception as e:
            logger.exception(
                "Unexpected error publishing event",
                record_id=record.record_id,
                product_id=record.key,
            )
            return self._failed(record, f"unexpected: {e}")

        await self._advance(record.key, token)
        return self._succeeded(record, event=event)

    async def _advance(self, key: str, token: SequenceToken) -> None:
        # The event is already out; a lost watermark only risks a duplicate
        try:
            await self._watermarks.advance(key, token)
        except Exception as e:
            logger.warning(
                "Failed to advance watermark",
                product_id=key,
                sequence_token=str(token),
                error=str(e),
            )

    @staticmethod
    def _succeeded(
        record: ChangeRecord,
        event: Optional[DomainEvent] = None,
        reason: Optional[str] = None,
    ) -> RecordResult:
        return RecordResult(
            record_id=record.record_id,
            outcome=RecordOutcome.SUCCEEDED,
            key=record.key,
            event=event,
            reason=reason,
        )

    @staticmethod
    def _failed(record: ChangeRecord, reason: str) -> RecordResult:
        return RecordResult(
            record_id=record.record_id,
            outcome=RecordOutcome.FAILED,
            key=record.key,
            reason=reason,
        )
