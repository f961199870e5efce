"""
DynamoDB Streams Function Entry Point.

Translates one DynamoDB Streams batch per invocation and returns the
partial batch failure report, so only failed records are redelivered.
"""

import asyncio
from typing import Optional

import redis.asyncio as aioredis
from dotenv import load_dotenv
from redis.asyncio import Redis

from config.settings import get_settings
from internal.infrastructure.kafka.producer import KafkaEventBus
from internal.infrastructure.memory import InMemoryEventBus, InMemoryWatermarkStore
from internal.infrastructure.redis.watermark import RedisWatermarkStore
from internal.transport.stream.dynamodb import StreamEventHandler
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
    service_name=f"{settings.app_name}-stream-handler",
)

logger = get_logger(__name__)


async def _handle(event: dict) -> dict:
    kafka: Optional[KafkaEventBus] = None
    client: Optional[Redis] = None

    try:
        if settings.event_bus_backend == "memory":
            event_bus: EventBus = InMemoryEventBus()
        else:
            kafka = KafkaEventBus(
                bootstrap_servers=settings.kafka_bootstrap_servers,
                topic=settings.kafka_events_topic,
                client_id=settings.kafka_client_id,
                send_timeout=settings.publish_timeout,
            )
            await kafka.start()
            event_bus = kafka

        if settings.watermark_backend == "memory":
            # Only deduplicates within this invocation
            watermarks: WatermarkStore = InMemoryWatermarkStore(max_keys=settings.watermark_max_keys)
        else:
            client = await aioredis.from_url(
                settings.redis_url,
                decode_responses=False,
                socket_timeout=settings.redis_socket_timeout,
            )
            watermarks = RedisWatermarkStore(
                client,
                key_prefix=settings.redis_key_prefix,
                ttl_seconds=settings.watermark_ttl_seconds,
            )

        translator = StreamTranslator(
            event_bus=event_bus,
            watermarks=watermarks,
            suppress_unchanged=settings.suppress_unchanged,
            max_concurrency=settings.translator_max_concurrency,
            publish_timeout=settings.publish_timeout,
        )
        stream_handler = StreamEventHandler(translator, batch_timeout=settings.batch_timeout)
        response = await stream_handler.handle(event)
        logger.info(
            "Stream batch handled",
            records=len(event.get("Records") or []),
            failures=len(response["batchItemFailures"]),
        )
        return response
    finally:
        if kafka:
            await kafka.stop()
        if client:
            await client.aclose()


def handler(event: dict, context: object = None) -> dict:
    """Function trigger entry point."""
    return asyncio.run(_handle(event))
