"""
Put Product Use Case.

Creates or replaces a product. The store's change feed turns the write into a
ProductCreated or ProductUpdated event.
"""
from typing import Any, Optional

from internal.domain.errors import StorageUnavailableError
from internal.domain.product import Product
from internal.usecase.ports import ProductStore
from pkg.logger.logger import get_logger
from pkg.resilience.retry import RetryPolicy


logger = get_logger(__name__)


class PutProductInput:
    """Input DTO for putting a product."""

    def __init__(self, product_id: str, name: str, price: Any) -> None:
        """
        Initialize put product input.

        Args:
            product_id: Externally assigned product id.
            name: Product name.
            price: Product price (int, str or Decimal).
        """
        self.product_id = product_id
        self.name = name
        self.price = price


class PutProductUseCase:
    """
    Use case for upserting a product.

    Validation runs before the store is touched, so an invalid product never
    causes a mutation. Put is idempotent and retried on transient failures.
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

    async def execute(self, input_dto: PutProductInput) -> Product:
        """
        Execute the put product use case.

        Args:
            input_dto: Product data.

        Returns:
            The stored product, with its price normalized.

        Raises:
            DomainValidationError: If the product is invalid.
            StorageUnavailableError: If the store stays unavailable.
        """
        product = Product(
            id=input_dto.product_id,
            name=input_dto.name,
            price=input_dto.price,
        )

        await self._retry.run(self._store.put, product)

        logger.info("Product stored", product_id=product.id)
        return product
