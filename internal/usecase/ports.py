"""
Ports the catalog use cases depend on.

Adapters live in internal/infrastructure and are chosen when the process is
wired, never by inspecting types at runtime.
"""
from typing import Optional, Protocol

from internal.domain.events import DomainEvent
from internal.domain.product import Product, ProductPage
from internal.domain.value_objects import SequenceToken


class ProductStore(Protocol):
    """
    Storage port for products keyed by id.

    Every effective put or delete produces exactly one change record on the
    adapter's change feed. Transient failures raise StorageUnavailableError.
    """

    async def list(
        self,
        cursor: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> ProductPage:
        """Return one page of products and the cursor of the next page."""
        ...

    async def get(self, product_id: str) -> Product:
        """Get a product, raising ProductNotFoundError when absent."""
        ...

    async def put(self, product: Product) -> None:
        """Validate and upsert a product."""
        ...

    async def delete(self, product_id: str) -> None:
        """Delete a product; deleting a missing id is not an error."""
        ...


class EventBus(Protocol):
    """Event bus port."""

    async def publish(self, event: DomainEvent) -> None:
        """Publish an event, raising EventPublishError on failure."""
        ...


class WatermarkStore(Protocol):
    """Highest translated sequence token per product id."""

    async def get(self, key: str) -> Optional[SequenceToken]:
        """Get the watermark of a key, None if never seen."""
        ...

    async def advance(self, key: str, token: SequenceToken) -> None:
        """Move the watermark forward; an older token leaves it unchanged."""
        ...
