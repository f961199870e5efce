"""
Change Stream Worker Entry Point.

Reads the product change stream from Redis and publishes a domain event for
every product mutation.
"""

import asyncio
import signal
from typing import Optional

import redis.asyncio as aioredis
from dotenv import load_dotenv
from redis.asyncio import Redis

from config.settings import get_settings
from internal.infrastructure.kafka.producer import KafkaEventBus
from internal.infrastructure.memory import InMemoryEventBus, InMemoryWatermarkStore
from internal.infrastructure.redis.change_feed import RedisChangeFeed
from internal.infrastructure.redis.store import changes_key
from internal.infrastructure.redis.watermark import RedisWatermarkStore
from internal.usecase.ports import EventBus, WatermarkStore
from internal.usecase.translate_changes import StreamTranslator
from pkg.logger.logger import get_logger, setup_logging

# Load environment variables
load_dotenv()

settings = get_settings()

# Setup logging
setup_logging(
    level=settings.log_level,
    json_format=settings.log_format == "json",
    service_name=f"{settings.app_name}-stream-worker",
)

logger = get_logger(__name__)


class ChangeStreamWorker:
    """
    Worker relaying store changes to the event bus.

    Owns the Redis connection, the event bus producer and the change feed.
    """

    def __init__(self) -> None:
        """Initialize the worker."""
        self._redis: Optional[Redis] = None
        self._kafka: Optional[KafkaEventBus] = None
        self._feed: Optional[RedisChangeFeed] = None

    async def _build_event_bus(self) -> EventBus:
        if settings.event_bus_backend == "memory":
            logger.warning("Using in-memory event bus, events stay in this process")
            return InMemoryEventBus()

        self._kafka = KafkaEventBus(
            bootstrap_servers=settings.kafka_bootstrap_servers,
            topic=settings.kafka_events_topic,
            client_id=settings.kafka_client_id,
            send_timeout=settings.publish_timeout,
        )
        await self._kafka.start()
        return self._kafka

    def _build_watermarks(self, client: Redis) -> WatermarkStore:
        if settings.watermark_backend == "memory":
            return InMemoryWatermarkStore(max_keys=settings.watermark_max_keys)
        return RedisWatermarkStore(
            client,
            key_prefix=settings.redis_key_prefix,
            ttl_seconds=settings.watermark_ttl_seconds,
        )

    async def start(self) -> None:
        """Start the worker and consume until cancelled."""
        logger.info(
            "Starting Change Stream Worker...",
            group=settings.feed_group,
            consumer=settings.feed_consumer,
        )

        try:
            self._redis = await aioredis.from_url(
                settings.redis_url,
                decode_responses=False,
                socket_timeout=settings.redis_socket_timeout,
            )
            await self._redis.ping()
            logger.info("Connected to Redis", url=settings.redis_url)
        except Exception as e:
            logger.error("Failed to connect to Redis", error=str(e))
            raise

        translator = StreamTranslator(
            event_bus=await self._build_event_bus(),
            watermarks=self._build_watermarks(self._redis),
            suppress_unchanged=settings.suppress_unchanged,
            max_concurrency=settings.translator_max_concurrency,
            publish_timeout=settings.publish_timeout,
        )

        self._feed = RedisChangeFeed(
            client=self._redis,
            translator=translator,
            stream_key=changes_key(settings.redis_key_prefix),
            group=settings.feed_group,
            consumer=settings.feed_consumer,
            batch_size=settings.feed_batch_size,
            # Keep the blocking read shorter than the socket timeout
            block_ms=min(settings.feed_block_ms, int(settings.redis_socket_timeout * 1000 / 2)),
            claim_idle_ms=settings.feed_claim_idle_ms,
            retry_backoff=settings.feed_retry_backoff,
            batch_timeout=settings.batch_timeout,
        )

        logger.info("Change Stream Worker started successfully")

        try:
            await self._feed.run()
        except asyncio.CancelledError:
            logger.info("Worker consumption cancelled")

    async def stop(self) -> None:
        """Stop the worker."""
        logger.info("Stopping Change Stream Worker...")

        if self._feed:
            self._feed.stop()

        if self._kafka:
            await self._kafka.stop()

        if self._redis:
            await self._redis.aclose()

        logger.info("Change Stream Worker stopped")


async def main() -> None:
    """Main entry point."""
    worker = ChangeStreamWorker()
    shutdown_event = asyncio.Event()

    # Handle shutdown signals
    def signal_handler() -> None:
        logger.info("Received shutdown signal")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    worker_task = asyncio.create_task(worker.start())
    shutdown_task = asyncio.create_task(shutdown_event.wait())

    try:
        done, _ = await asyncio.wait(
            {worker_task, shutdown_task},
            return_when=asyncio.FIRST_COMPLETED,
        )

        worker_task.cancel()
        shutdown_task.cancel()
        await asyncio.gather(worker_task, shutdown_task, return_exceptions=True)

        if worker_task in done and worker_task.exception() is not None:
            raise worker_task.exception()
    except Exception as e:
        logger.error("Worker failed", error=str(e))
        raise
    finally:
        await worker.stop()


if __name__ == "__main__":
    asyncio.run(main())
