"""
In-memory product store.

Dict-backed store for local runs and tests. It keeps an in-process change
log so the put/delete to event path works without any infrastructure.
"""
from __future__ import annotations

import asyncio
import base64
import binascii
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

from internal.domain.change import ChangeKind, ChangeRecord
from internal.domain.errors import DomainValidationError, ProductNotFoundError
from internal.domain.product import Product, ProductPage


def _encode_cursor(product_id: str) -> str:
    return base64.urlsafe_b64encode(product_id.encode("utf-8")).decode("ascii")


def _decode_cursor(cursor: str) -> str:
    try:
        decoded = base64.b64decode(cursor.encode("ascii"), altchars=b"-_", validate=True)
        product_id = decoded.decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError):
        raise DomainValidationError("Invalid cursor")
    if not product_id:
        raise DomainValidationError("Invalid cursor")
    return product_id


class InMemoryProductStore:
    """
    In-memory implementation of the ProductStore port.

    Pages are returned in id order; the cursor encodes the last id of the
    previous page. Every effective put or delete appends one change record
    with a strictly increasing sequence token.
    """

    def __init__(self, default_page_size: int = 100) -> None:
        """
        Initialize the store.

        Args:
            default_page_size: Page size when list() gets no limit.
        """
        self._data: dict[str, Product] = {}
        self._changes: list[ChangeRecord] = []
        self._sequence = 0
        self._default_page_size = default_page_size
        self._lock = asyncio.Lock()

    async def list(
        self,
        cursor: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> ProductPage:
        """Return one page of products in id order."""
        limit = limit or self._default_page_size
        after = _decode_cursor(cursor) if cursor else None

        async with self._lock:
            ids = sorted(i for i in self._data if after is None or i > after)
            page_ids = ids[:limit]
            products = [replace(self._data[i]) for i in page_ids]

        next_cursor = _encode_cursor(page_ids[-1]) if len(ids) > limit else None
        return ProductPage(products=products, next_cursor=next_cursor)

    async def get(self, product_id: str) -> Product:
        """Get a product by id."""
        async with self._lock:
            product = self._data.get(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return replace(product)

    async def put(self, product: Product) -> None:
        """Validate and upsert a product."""
        product.validate()
        stored = replace(product)
        async with self._lock:
            old = self._data.get(stored.id)
            self._data[stored.id] = stored
            self._record(
                ChangeKind.INSERT if old is None else ChangeKind.MODIFY,
                stored.id,
                old_image=old,
                new_image=replace(stored),
            )

    async def delete(self, product_id: str) -> None:
        """Delete a product; a missing id is a no-op."""
        async with self._lock:
            old = self._data.pop(product_id, None)
            if old is not None:
                self._record(ChangeKind.REMOVE, product_id, old_image=old)

    def _record(
        self,
        kind: ChangeKind,
        key: str,
        old_image: Optional[Product] = None,
        new_image: Optional[Product] = None,
    ) -> None:
        self._sequence += 1
        self._changes.append(
            ChangeRecord(
                record_id=f"mem-{self._sequence}",
                kind=kind,
                key=key,
                sequence_token=str(self._sequence),
                old_image=old_image,
                new_image=new_image,
                arrival_time=datetime.now(timezone.utc),
            )
        )

    @property
    def changes(self) -> list[ChangeRecord]:
        """Change records not yet drained."""
        return list(self._changes)

    def drain_changes(self) -> list[ChangeRecord]:
        """
        Hand over pending change records, as a feed batch.

        Returns:
            Records in the order the mutations happened.
        """
        changes, self._changes = self._changes, []
        return changes

    def requeue_changes(self, records: list[ChangeRecord]) -> None:
        """Put records back ahead of newer ones, for redelivery."""
        self._changes[:0] = records
