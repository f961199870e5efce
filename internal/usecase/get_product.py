"""
Get Product Use Case.
"""
from typing import Optional

from internal.domain.errors import StorageUnavailableError
from internal.domain.product import Product
from internal.usecase.ports import ProductStore
from pkg.resilience.retry import RetryPolicy


class GetProductUseCase:
    """Use case for reading a single product."""

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

    async def execute(self, product_id: str) -> Product:
        """
        Get a product by id.

        Raises:
            ProductNotFoundError: If no product has this id.
            StorageUnavailableError: If the store stays unavailable.
        """
        return await self._retry.run(self._store.get, product_id)
