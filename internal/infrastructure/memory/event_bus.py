"""
In-memory event bus.
"""
from typing import Iterable, Optional

from internal.domain.errors import EventPublishError
from internal.domain.events import DomainEvent
from pkg.logger.logger import get_logger


logger = get_logger(__name__)


class InMemoryEventBus:
    """
    Event bus keeping published events in a list.

    Used for local runs without Kafka and in tests, where it can be told to
    reject events of chosen products or sequence tokens.
    """

    def __init__(self, fail_for: Optional[Iterable[str]] = None) -> None:
        """
        Initialize the bus.

        Args:
            fail_for: Product ids or sequence tokens whose events are rejected.
        """
        self.published: list[DomainEvent] = []
        self.fail_for: set[str] = set(fail_for or ())
        self.attempts = 0

    async def publish(self, event: DomainEvent) -> None:
        """Record the event, or fail for configured ids."""
        self.attempts += 1
        if event.product_id in self.fail_for or event.source_sequence_token in self.fail_for:
            raise EventPublishError(event.event_type.value, "rejected by in-memory bus")
        self.published.append(event)
        logger.debug(
            "Event published in memory",
            event_type=event.event_type.value,
            product_id=event.product_id,
        )
