"""
Kafka event bus.

Publishes product domain events to a Kafka topic.
"""
import asyncio
import json
import time
from typing import Optional

from aiokafka import AIOKafkaProducer
from aiokafka.errors import KafkaError

from internal.domain.errors import EventPublishError
from internal.domain.events import DomainEvent
from internal.infrastructure.metrics import EVENTS_PUBLISHED_TOTAL, PUBLISH_DURATION
from pkg.logger.logger import get_logger


logger = get_logger(__name__)


class KafkaEventBus:
    """
    Kafka implementation of the EventBus port.

    Messages are keyed by product id, so all events of one product land on
    the same partition and keep their order.
    """

    def __init__(
        self,
        bootstrap_servers: str,
        topic: str = "product-events",
        client_id: str = "product-catalog",
        send_timeout: float = 5.0,
        producer: Optional[AIOKafkaProducer] = None,
    ) -> None:
        """
        Initialize the Kafka event bus.

        Args:
            bootstrap_servers: Comma-separated list of Kafka brokers.
            topic: Topic receiving product events.
            client_id: Client identifier for the producer.
            send_timeout: Seconds to wait for the broker acknowledgement.
            producer: Already built producer, mostly for tests.
        """
        self._bootstrap_servers = bootstrap_servers
        self._topic = topic
        self._client_id = client_id
        self._send_timeout = send_timeout
        self._producer = producer

    async def start(self) -> None:
        """Start the Kafka producer."""
        if self._producer is None:
            self._producer = AIOKafkaProducer(
                bootstrap_servers=self._bootstrap_servers,
                client_id=self._client_id,
                value_serializer=lambda v: json.dumps(v).encode("utf-8"),
                key_serializer=lambda k: k.encode("utf-8") if k else None,
                acks="all",
                enable_idempotence=True,
            )
        await self._producer.start()
        logger.info(
            "Kafka producer started",
            bootstrap_servers=self._bootstrap_servers,
            topic=self._topic,
        )

    async def stop(self) -> None:
        """Stop the Kafka producer."""
        if self._producer:
            await self._producer.stop()
            logger.info("Kafka producer stopped")

    async def publish(self, event: DomainEvent) -> None:
        """
        Publish a domain event and wait for the broker acknowledgement.

        Args:
            event: The event to publish.

        Raises:
            EventPublishError: If the producer is not started, the broker
                rejects the message or the acknowledgement times out.
        """
        event_type = event.event_type.value
        if not self._producer:
            raise EventPublishError(event_type, "producer not started")

        start = time.perf_counter()
        status = "error"
        try:
            await asyncio.wait_for(
                self._producer.send_and_wait(
                    topic=self._topic,
                    key=event.product_id,
                    value=event.to_dict(),
                    headers=[("event_type", event_type.encode("utf-8"))],
                ),
                timeout=self._send_timeout,
            )
            status = "success"
        except asyncio.TimeoutError as e:
            raise EventPublishError(event_type, "broker acknowledgement timed out") from e
        except KafkaError as e:
            raise EventPublishError(event_type, str(e)) from e
        finally:
            EVENTS_PUBLISHED_TOTAL.labels(event_type=event_type, status=status).inc()
            PUBLISH_DURATION.observe(time.perf_counter() - start)

        logger.info(
            "Event published to Kafka",
            topic=self._topic,
            event_type=event_type,
            product_id=event.product_id,
            sequence_token=event.source_sequence_token,
        )
