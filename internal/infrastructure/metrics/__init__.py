"""
Metrics package.
"""
from .prometheus import (
    CHANGE_RECORDS_TOTAL,
    EVENTS_PUBLISHED_TOTAL,
    HTTP_REQUEST_DURATION,
    HTTP_REQUESTS_TOTAL,
    PUBLISH_DURATION,
    STORE_OPERATION_DURATION,
    STORE_OPERATIONS_TOTAL,
    record_batch,
)

__all__ = [
    "CHANGE_RECORDS_TOTAL",
    "EVENTS_PUBLISHED_TOTAL",
    "HTTP_REQUEST_DURATION",
    "HTTP_REQUESTS_TOTAL",
    "PUBLISH_DURATION",
    "STORE_OPERATION_DURATION",
    "STORE_OPERATIONS_TOTAL",
    "record_batch",
]
