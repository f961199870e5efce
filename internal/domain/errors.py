"""
Domain-specific exceptions.

Error taxonomy shared by the catalog use cases, the storage adapters and the
change stream translator.
"""


class DomainError(Exception):
    """Base exception for domain errors."""

    def __init__(self, message: str) -> None:
        """
        Initialize domain error.

        Args:
            message: Error message describing the issue.
        """
        self.message = message
        super().__init__(self.message)


class DomainValidationError(DomainError):
    """Exception raised when domain validation fails."""
    pass


class ProductNotFoundError(DomainError):
    """Exception raised when a product is not found."""

    def __init__(self, product_id: str) -> None:
        """
        Initialize product not found error.

        Args:
            product_id: The ID of the product that was not found.
        """
        super().__init__(f"Product with ID {product_id} not found")
        self.product_id = product_id


class StorageError(DomainError):
    """Base exception for failures reported by a storage adapter."""
    pass


class StorageUnavailableError(StorageError):
    """
    Transient storage failure (timeout, throttling, lost connection).

    Safe to retry with backoff: every catalog operation is idempotent.
    """

    def __init__(self, operation: str, reason: str) -> None:
        """
        Initialize storage unavailable error.

        Args:
            operation: Storage operation that failed.
            reason: The reason for the failure.
        """
        super().__init__(f"Storage unavailable during '{operation}': {reason}")
        self.operation = operation
        self.reason = reason


class StorageConflictError(StorageError):
    """Raised by adapters implementing optimistic concurrency on a lost race."""

    def __init__(self, product_id: str) -> None:
        """
        Initialize storage conflict error.

        Args:
            product_id: The ID of the product that was concurrently modified.
        """
        super().__init__(f"Concurrent modification of product {product_id}")
        self.product_id = product_id


class EventPublishError(DomainError):
    """Exception raised when event publishing fails."""

    def __init__(self, event_type: str, reason: str) -> None:
        """
        Initialize event publish error.

        Args:
            event_type: Type of event that failed to publish.
            reason: The reason for the failure.
        """
        super().__init__(f"Failed to publish event '{event_type}': {reason}")
        self.event_type = event_type
        self.reason = reason


class MalformedChangeRecordError(DomainError):
    """
    Exception raised for a change record that violates its invariants.

    Permanent: the record is skipped and never retried.
    """

    def __init__(self, record_id: str, reason: str) -> None:
        """
        Initialize malformed change record error.

        Args:
            record_id: Feed identifier of the offending record.
            reason: Which invariant was violated.
        """
        super().__init__(f"Malformed change record {record_id}: {reason}")
        self.record_id = record_id
        self.reason = reason
