"""
Domain events published for product changes.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .change import ChangeKind, ChangeRecord
from .product import Product


class EventType(str, Enum):
    """Outbound event types."""

    PRODUCT_CREATED = "ProductCreated"
    PRODUCT_UPDATED = "ProductUpdated"
    PRODUCT_DELETED = "ProductDeleted"


_EVENT_TYPE_BY_KIND = {
    ChangeKind.INSERT: EventType.PRODUCT_CREATED,
    ChangeKind.MODIFY: EventType.PRODUCT_UPDATED,
    ChangeKind.REMOVE: EventType.PRODUCT_DELETED,
}


@dataclass(frozen=True)
class DomainEvent:
    """
    Message describing a product change, handed to the event bus.

    Attributes:
        event_type: Created, Updated or Deleted.
        product_id: Id of the product concerned.
        payload: Product snapshot; None for deletions.
        source_sequence_token: Token of the originating change record, kept
            for downstream deduplication.
    """
    event_type: EventType
    product_id: str
    source_sequence_token: str
    payload: Optional[Product] = None

    def to_dict(self) -> dict:
        """Wire representation of the event."""
        data = {
            "event_type": self.event_type.value,
            "product_id": self.product_id,
            "source_sequence_token": self.source_sequence_token,
        }
        if self.payload is not None:
            data["payload"] = self.payload.to_dict()
        return data


def map_change_record(
    record: ChangeRecord,
    suppress_unchanged: bool = True,
) -> Optional[DomainEvent]:
    """
    Map a validated change record to its domain event.

    INSERT maps to ProductCreated and MODIFY to ProductUpdated, both carrying
    the new image. REMOVE maps to ProductDeleted with the id only.

    Args:
        record: A change record that passed ``validate()``.
        suppress_unchanged: Return None for a MODIFY whose images are equal.

    Returns:
        The event, or None when the record is suppressed.
    """
    if suppress_unchanged and record.is_noop:
        return None

    event_type = _EVENT_TYPE_BY_KIND[record.kind]
    payload = None if record.kind == ChangeKind.REMOVE else record.new_image
    return DomainEvent(
        event_type=event_type,
        product_id=record.key,
        source_sequence_token=record.sequence_token,
        payload=payload,
    )
