"""
Redis infrastructure package.
"""
from .change_feed import ConcurrentConsumerError, RedisChangeFeed, parse_stream_entry
from .store import RedisProductStore, changes_key, products_key
from .watermark import RedisWatermarkStore

__all__ = [
    "ConcurrentConsumerError",
    "RedisChangeFeed",
    "RedisProductStore",
    "RedisWatermarkStore",
    "changes_key",
    "parse_stream_entry",
    "products_key",
]
