"""
Structured JSON logging.
"""
from .logger import (
    StructuredFormatter,
    StructuredLogger,
    get_logger,
    get_request_id,
    set_request_id,
    setup_logging,
)

__all__ = [
    "StructuredFormatter",
    "StructuredLogger",
    "get_logger",
    "get_request_id",
    "set_request_id",
    "setup_logging",
]
