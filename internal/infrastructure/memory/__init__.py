"""
In-memory adapters.
"""
from .change_feed import InMemoryChangeFeed
from .event_bus import InMemoryEventBus
from .store import InMemoryProductStore
from .watermark import InMemoryWatermarkStore

__all__ = [
    "InMemoryChangeFeed",
    "InMemoryEventBus",
    "InMemoryProductStore",
    "InMemoryWatermarkStore",
]
