"""
In-process change feed.

Relays the in-memory store's change log to the translator, so a single
process without Redis still turns writes into events.
"""
import asyncio
from typing import Optional

from internal.infrastructure.metrics import record_batch
from internal.usecase.translate_changes import BatchResult, StreamTranslator
from pkg.logger.logger import get_logger

from .store import InMemoryProductStore


logger = get_logger(__name__)


FEED_SOURCE = "memory"


class InMemoryChangeFeed:
    """
    Polls the change log of an InMemoryProductStore.

    Failed records are put back at the head of the log and retried on the
    next cycle; succeeded and malformed ones are dropped.
    """

    def __init__(
        self,
        store: InMemoryProductStore,
        translator: StreamTranslator,
        interval: float = 1.0,
        batch_timeout: Optional[float] = None,
    ) -> None:
        """
        Initialize the feed.

        Args:
            store: Store whose change log is relayed.
            translator: Translator receiving each batch.
            interval: Seconds between polls.
            batch_timeout: Seconds allowed to translate one batch.
        """
        self._store = store
        self._translator = translator
        self._interval = interval
        self._batch_timeout = batch_timeout
        self._running = False

    async def poll_once(self) -> BatchResult:
        """Translate everything currently in the change log."""
        records = self._store.drain_changes()
        if not records:
            return BatchResult()

        try:
            batch = await self._translator.translate(records, timeout=self._batch_timeout)
        except BaseException:
            self._store.requeue_changes(records)
            raise
        failed = set(batch.failed_ids)
        if failed:
            self._store.requeue_changes([r for r in records if r.record_id in failed])
        record_batch(FEED_SOURCE, batch.counts())
        return batch

    async def run(self) -> None:
        """Poll until stopped or cancelled."""
        self._running = True
        while self._running:
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception("In-memory change feed cycle failed", error=str(e))
            await asyncio.sleep(self._interval)

    def stop(self) -> None:
        """Stop after the current cycle."""
        self._running = False
