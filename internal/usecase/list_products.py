"""
List Products Use Case.

Cursor-based pagination over the whole product table.
"""
from typing import Optional

from internal.domain.errors import DomainValidationError, StorageUnavailableError
from internal.domain.product import Product, ProductPage
from internal.usecase.ports import ProductStore
from pkg.resilience.retry import RetryPolicy


# Upper bound on a single page requested by a client
MAX_PAGE_SIZE = 1000


class ListProductsInput:
    """Input DTO for listing products."""

    def __init__(
        self,
        cursor: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> None:
        """
        Initialize list products input.

        Args:
            cursor: Continuation cursor returned by the previous page.
            limit: Maximum number of products on the page.
        """
        self.cursor = cursor
        self.limit = limit


class ListProductsUseCase:
    """
    Use case for listing products page by page.

    Pages are only as consistent as the adapter's scan: an adapter may repeat
    a product across pages, never skip one that existed for the whole scan.
    """

    def __init__(
        self,
        store: ProductStore,
        page_size: int = 100,
        retry: Optional[RetryPolicy] = None,
    ) -> None:
        """
        Initialize the use case.

        Args:
            store: Product store.
            page_size: Page size used when the caller does not pass a limit.
            retry: Retry policy for transient storage failures.
        """
        self._store = store
        self._page_size = page_size
        self._retry = retry or RetryPolicy(retry_on=(StorageUnavailableError,))

    async def execute(self, input_dto: ListProductsInput) -> ProductPage:
        """
        Return one page of products.

        Raises:
            DomainValidationError: If the limit is out of range.
            StorageUnavailableError: If the store stays unavailable.
        """
        limit = input_dto.limit if input_dto.limit is not None else self._page_size
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise DomainValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")

        return await self._retry.run(self._store.list, input_dto.cursor, limit)

    async def collect_all(self) -> list[Product]:
        """
        Walk every page and return all products, each id once.

        Returns:
            Products in the order first seen.
        """
        products: dict[str, Product] = {}
        cursor: Optional[str] = None
        while True:
            page = await self.execute(ListProductsInput(cursor=cursor))
            for product in page.products:
                products.setdefault(product.id, product)
            if page.next_cursor is None:
                return list(products.values())
            cursor = page.next_cursor
