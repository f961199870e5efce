"""
Pytest configuration and fixtures.
"""
from decimal import Decimal
from typing import Optional

import fakeredis
import pytest
import pytest_asyncio

from internal.domain.change import ChangeKind, ChangeRecord
from internal.domain.errors import StorageUnavailableError
from internal.domain.product import Product
from internal.infrastructure.memory import (
    InMemoryEventBus,
    InMemoryProductStore,
    InMemoryWatermarkStore,
)
from internal.usecase.translate_changes import StreamTranslator
from pkg.resilience.retry import RetryPolicy


def _make_product(product_id: str = "p1", name: str = "Widget", price="9.99") -> Product:
    """Build a valid product."""
    return Product(id=product_id, name=name, price=price)


def _make_record(
    kind: ChangeKind,
    key: str = "p1",
    token: str = "1",
    old: Optional[Product] = None,
    new: Optional[Product] = None,
    record_id: Optional[str] = None,
) -> ChangeRecord:
    """Build a change record with a record id derived from the token."""
    return ChangeRecord(
        record_id=record_id or f"r-{key}-{token}",
        kind=kind,
        key=key,
        sequence_token=token,
        old_image=old,
        new_image=new,
    )


@pytest.fixture
def product_data():
    """Sample product data for tests."""
    return {
        "id": "p1",
        "name": "Widget",
        "price": 999,
    }


@pytest.fixture
def product():
    """Sample product."""
    return Product(id="p1", name="Widget", price=Decimal("999"))


@pytest.fixture
def store():
    """Empty in-memory product store."""
    return InMemoryProductStore(default_page_size=2)


@pytest.fixture
def event_bus():
    """In-memory event bus."""
    return InMemoryEventBus()


@pytest.fixture
def watermarks():
    """In-memory watermark store."""
    return InMemoryWatermarkStore(max_keys=100)


@pytest.fixture
def translator(event_bus, watermarks):
    """Translator wired to the in-memory bus and watermarks."""
    return StreamTranslator(event_bus=event_bus, watermarks=watermarks)


@pytest.fixture
def fast_retry():
    """Retry policy without real backoff."""
    return RetryPolicy(
        attempts=3,
        base_delay=0.0,
        max_delay=0.0,
        retry_on=(StorageUnavailableError,),
    )


@pytest.fixture
def make_product():
    """Factory for valid products."""
    return _make_product


@pytest.fixture
def make_record():
    """Factory for change records."""
    return _make_record


@pytest_asyncio.fixture
async def fake_redis():
    """In-process Redis with Lua support, empty for every test."""
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer())
    yield client
    await client.aclose()
