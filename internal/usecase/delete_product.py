"""
Delete Product Use Case.
"""
from typing import Optional

from internal.domain.errors import StorageUnavailableError
from internal.usecase.ports import ProductStore
from pkg.logger.logger import get_logger
from pkg.resilience.retry import RetryPolicy


logger = get_logger(__name__)


class DeleteProductUseCase:
    """
    Use case for deleting a product.

    Deleting an unknown id succeeds, so a retried delete never fails
    spuriously.
    """

    def __init__(
        self,
        store: ProductStore,
        retry: Optional[RetryPolicy] = None,
    ) -> None:
        """
        Initialize the use case.

        Args:
            store: Product store.
            retry: Retry policy for transient storage failures.
        """
        self._store = store
        self._retry = retry or RetryPolicy(retry_on=(StorageUnavailableError,))

    async def execute(self, product_id: str) -> None:
        """
        Delete a product by id.

        Raises:
            StorageUnavailableError: If the store stays unavailable.
        """
        await self._retry.run(self._store.delete, product_id)
        logger.info("Product deleted", product_id=product_id)
