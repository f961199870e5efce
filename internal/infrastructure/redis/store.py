"""
Redis product store.

Products live in one hash keyed by product id. Every put and delete runs as a
Lua script that mutates the hash and appends exactly one entry to the change
stream in the same atomic step, so the change feed can never miss or invent
a mutation.
"""
import asyncio
import time
from typing import Any, Awaitable, Callable, Optional, TypeVar

import redis.asyncio as aioredis
from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from internal.domain.errors import (
    DomainValidationError,
    ProductNotFoundError,
    StorageError,
    StorageUnavailableError,
)
from internal.domain.product import Product, ProductPage
from internal.infrastructure.metrics import STORE_OPERATION_DURATION, STORE_OPERATIONS_TOTAL
from pkg.logger.logger import get_logger
from pkg.resilience.circuit_breaker import CircuitBreaker, CircuitBreakerError

from .codec import decode_product, encode_product


logger = get_logger(__name__)


T = TypeVar("T")


# KEYS: products hash, change stream. ARGV: id, packed product, stream max length.
PUT_SCRIPT = """
local old = redis.call('HGET', KEYS[1], ARGV[1])
redis.call('HSET', KEYS[1], ARGV[1], ARGV[2])
local kind = 'MODIFY'
if not old then
    kind = 'INSERT'
    old = ''
end
return redis.call('XADD', KEYS[2], 'MAXLEN', '~', ARGV[3], '*',
    'kind', kind, 'key', ARGV[1], 'old', old, 'new', ARGV[2])
"""

# KEYS: products hash, change stream. ARGV: id, stream max length.
DELETE_SCRIPT = """
local old = redis.call('HGET', KEYS[1], ARGV[1])
if not old then
    return false
end
redis.call('HDEL', KEYS[1], ARGV[1])
return redis.call('XADD', KEYS[2], 'MAXLEN', '~', ARGV[2], '*',
    'kind', 'REMOVE', 'key', ARGV[1], 'old', old, 'new', '')
"""

# Errors that mean the backend could not be reached in time
TRANSIENT_ERRORS = (asyncio.TimeoutError, RedisConnectionError, RedisTimeoutError)


def products_key(prefix: str) -> str:
    """Hash holding the products."""
    return f"{prefix}:products"


def changes_key(prefix: str) -> str:
    """Stream holding the change records."""
    return f"{prefix}:changes"


class RedisProductStore:
    """
    Redis implementation of the ProductStore port.

    Reads and writes go to the same primary connection, so a get issued after
    a completed put observes it. The HSCAN cursor is the listing cursor; a
    page may repeat an id while Redis rehashes, which the listing use case
    de-duplicates.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        key_prefix: str = "catalog",
        operation_timeout: float = 3.0,
        socket_timeout: float = 2.0,
        stream_max_length: int = 100_000,
        default_page_size: int = 100,
        circuit_breaker: Optional[CircuitBreaker] = None,
        client: Optional[Redis] = None,
    ) -> None:
        """
        Initialize the store.

        Args:
            redis_url: Redis connection URL.
            key_prefix: Prefix of the products hash and change stream keys.
            operation_timeout: Seconds allowed for one storage call.
            socket_timeout: Socket timeout of the connection.
            stream_max_length: Approximate cap of the change stream.
            default_page_size: Page size when list() gets no limit.
            circuit_breaker: Breaker guarding the backend.
            client: Already connected client, mostly for tests.
        """
        self._redis_url = redis_url
        self._products_key = products_key(key_prefix)
        self._changes_key = changes_key(key_prefix)
        self._operation_timeout = operation_timeout
        self._socket_timeout = socket_timeout
        self._stream_max_length = stream_max_length
        self._default_page_size = default_page_size
        self._breaker = circuit_breaker or CircuitBreaker(
            name="redis-store",
            tracked_exceptions=TRANSIENT_ERRORS,
        )
        self._redis: Optional[Redis] = None
        if client is not None:
            self._bind(client)

    def _bind(self, client: Redis) -> None:
        self._redis = client
        self._put_script = client.register_script(PUT_SCRIPT)
        self._delete_script = client.register_script(DELETE_SCRIPT)

    async def connect(self) -> None:
        """Connect to Redis."""
        client = await aioredis.from_url(
            self._redis_url,
            decode_responses=False,
            socket_timeout=self._socket_timeout,
        )
        self._bind(client)
        logger.info("Connected to Redis", url=self._redis_url, products_key=self._products_key)

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            logger.info("Disconnected from Redis")

    @property
    def changes_key(self) -> str:
        """Key of the change stream written by put and delete."""
        return self._changes_key

    async def list(
        self,
        cursor: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> ProductPage:
        """
        Return one page of products.

        The page size is a hint passed to HSCAN; Redis may return a few more
        or fewer entries.

        Args:
            cursor: Cursor returned with the previous page.
            limit: Page size hint.

        Returns:
            Products and the next cursor, None once the scan completes.
        """
        if cursor is None or cursor == "":
            scan_cursor = 0
        elif cursor.isdigit():
            scan_cursor = int(cursor)
        else:
            raise DomainValidationError("Invalid cursor")
        count = limit or self._default_page_size

        async def scan() -> ProductPage:
            next_cursor, entries = await self._client.hscan(
                self._products_key,
                cursor=scan_cursor,
                count=count,
            )
            products = [self._decode(field, value) for field, value in entries.items()]
            return ProductPage(
                products=products,
                next_cursor=str(next_cursor) if int(next_cursor) != 0 else None,
            )

        return await self._execute("list", scan)

    async def get(self, product_id: str) -> Product:
        """
        Get a product by id.

        Raises:
            ProductNotFoundError: If no product has this id.
            StorageUnavailableError: If Redis is unreachable.
        """
        async def read() -> Product:
            data = await self._client.hget(self._products_key, product_id)
            if data is None:
                raise ProductNotFoundError(product_id)
            return self._decode(product_id, data)

        return await self._execute("get", read)

    async def put(self, product: Product) -> None:
        """
        Validate and upsert a product, appending one change entry.

        Raises:
            DomainValidationError: If the product is invalid; nothing is written.
            StorageUnavailableError: If Redis is unreachable.
        """
        product.validate()
        packed = encode_product(product)

        async def write() -> Any:
            return await self._put_script(
                keys=[self._products_key, self._changes_key],
                args=[product.id, packed, self._stream_max_length],
            )

        entry_id = await self._execute("put", write)
        logger.debug("Product stored", product_id=product.id, change_id=_text(entry_id))

    async def delete(self, product_id: str) -> None:
        """
        Delete a product; a missing id writes nothing.

        Raises:
            StorageUnavailableError: If Redis is unreachable.
        """
        async def remove() -> Any:
            return await self._delete_script(
                keys=[self._products_key, self._changes_key],
                args=[product_id, self._stream_max_length],
            )

        entry_id = await self._execute("delete", remove)
        if entry_id:
            logger.debug("Product deleted", product_id=product_id, change_id=_text(entry_id))

    @property
    def _client(self) -> Redis:
        if self._redis is None:
            raise StorageUnavailableError("connect", "Redis not connected")
        return self._redis

    def _decode(self, product_id: Any, data: bytes) -> Product:
        try:
            product = decode_product(data)
        except (ValueError, DomainValidationError) as e:
            raise StorageError(f"Corrupt product record {_text(product_id)}: {e}") from e
        if product is None:
            raise StorageError(f"Empty product record {_text(product_id)}")
        return product

    async def _execute(self, operation: str, func: Callable[[], Awaitable[T]]) -> T:
        """
        Run one storage call under the timeout and the circuit breaker.

        Transient failures become StorageUnavailableError; anything else
        propagates unchanged.
        """
        start = time.perf_counter()
        status = "success"
        try:
            return await self._breaker.call(
                lambda: asyncio.wait_for(func(), timeout=self._operation_timeout)
            )
        except ProductNotFoundError:
            status = "not_found"
            raise
        except CircuitBreakerError as e:
            status = "unavailable"
            raise StorageUnavailableError(operation, e.message) from e
        except asyncio.TimeoutError as e:
            status = "unavailable"
            logger.warning("Redis call timed out", operation=operation, timeout=self._operation_timeout)
            raise StorageUnavailableError(operation, "timeout") from e
        except (RedisConnectionError, RedisTimeoutError) as e:
            status = "unavailable"
            logger.warning("Redis unavailable", operation=operation, error=str(e))
            raise StorageUnavailableError(operation, str(e)) from e
        except StorageUnavailableError:
            status = "unavailable"
            raise
        except Exception:
            status = "error"
            raise
        finally:
            STORE_OPERATIONS_TOTAL.labels(operation=operation, status=status).inc()
            STORE_OPERATION_DURATION.labels(operation=operation).observe(
                time.perf_counter() - start
            )


def _text(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value
