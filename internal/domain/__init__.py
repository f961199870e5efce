"""
Domain package for Product Catalog.

Contains domain entities, value objects, change records, events and errors.
"""
from .product import Product, ProductPage
from .value_objects import Price, SequenceToken
from .change import ChangeKind, ChangeRecord
from .events import DomainEvent, EventType, map_change_record
from .errors import (
    DomainError,
    DomainValidationError,
    ProductNotFoundError,
    StorageError,
    StorageUnavailableError,
    StorageConflictError,
    EventPublishError,
    MalformedChangeRecordError,
)

__all__ = [
    "Product",
    "ProductPage",
    "Price",
    "SequenceToken",
    "ChangeKind",
    "ChangeRecord",
    "DomainEvent",
    "EventType",
    "map_change_record",
    "DomainError",
    "DomainValidationError",
    "ProductNotFoundError",
    "StorageError",
    "StorageUnavailableError",
    "StorageConflictError",
    "EventPublishError",
    "MalformedChangeRecordError",
]
