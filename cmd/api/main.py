"""
FastAPI Application Entry Point.

REST API server for the Product Catalog.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config.settings import Settings, get_settings
from internal.domain.errors import StorageUnavailableError
from internal.infrastructure.kafka.producer import KafkaEventBus
from internal.infrastructure.memory import (
    InMemoryChangeFeed,
    InMemoryEventBus,
    InMemoryProductStore,
    InMemoryWatermarkStore,
)
from internal.infrastructure.redis.store import TRANSIENT_ERRORS, RedisProductStore
from internal.transport.http.middleware import MetricsMiddleware, RequestIDMiddleware
from internal.transport.http.v1.handlers import (
    register_exception_handlers,
    router,
    set_dependencies,
    system_router,
)
from internal.usecase.delete_product import DeleteProductUseCase
from internal.usecase.get_product import GetProductUseCase
from internal.usecase.list_products import ListProductsUseCase
from internal.usecase.put_product import PutProductUseCase
from internal.usecase.translate_changes import StreamTranslator
from pkg.logger.logger import get_logger, setup_logging
from pkg.resilience.circuit_breaker import CircuitBreaker
from pkg.resilience.retry import RetryPolicy


# Load environment variables
load_dotenv()

settings = get_settings()

# Setup logging
setup_logging(
    level=settings.log_level,
    json_format=settings.log_format == "json",
    service_name=settings.app_name,
)

logger = get_logger(__name__)


def build_retry_policy(settings: Settings) -> RetryPolicy:
    """Retry policy shared by the catalog use cases."""
    return RetryPolicy(
        attempts=settings.store_retry_attempts,
        base_delay=settings.store_retry_base_delay,
        max_delay=settings.store_retry_max_delay,
        retry_on=(StorageUnavailableError,),
    )


def build_redis_store(settings: Settings) -> RedisProductStore:
    """Redis store configured from settings, not yet connected."""
    return RedisProductStore(
        redis_url=settings.redis_url,
        key_prefix=settings.redis_key_prefix,
        operation_timeout=settings.store_operation_timeout,
        socket_timeout=settings.redis_socket_timeout,
        stream_max_length=settings.change_stream_max_length,
        default_page_size=settings.list_page_size,
        circuit_breaker=CircuitBreaker(
            name="redis-store",
            failure_threshold=settings.store_circuit_failure_threshold,
            recovery_timeout=settings.store_circuit_recovery_timeout,
            tracked_exceptions=TRANSIENT_ERRORS,
        ),
    )


class Resources:
    """Process-wide resources opened by the lifespan."""

    redis_store: Optional[RedisProductStore] = None
    event_bus: Optional[KafkaEventBus] = None
    relay_task: Optional["asyncio.Task[None]"] = None


_resources = Resources()


async def _start_memory_relay(store: InMemoryProductStore) -> InMemoryChangeFeed:
    if settings.event_bus_backend == "kafka":
        bus = KafkaEventBus(
            bootstrap_servers=settings.kafka_bootstrap_servers,
            topic=settings.kafka_events_topic,
            client_id=settings.kafka_client_id,
            send_timeout=settings.publish_timeout,
        )
        await bus.start()
        _resources.event_bus = bus
    else:
        bus = InMemoryEventBus()

    translator = StreamTranslator(
        event_bus=bus,
        watermarks=InMemoryWatermarkStore(max_keys=settings.watermark_max_keys),
        suppress_unchanged=settings.suppress_unchanged,
        max_concurrency=settings.translator_max_concurrency,
        publish_timeout=settings.publish_timeout,
    )
    feed = InMemoryChangeFeed(
        store=store,
        translator=translator,
        interval=settings.feed_retry_backoff,
        batch_timeout=settings.batch_timeout,
    )
    _resources.relay_task = asyncio.create_task(feed.run())
    logger.info("In-process change relay started", event_bus=settings.event_bus_backend)
    return feed


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Handles startup and shutdown of resources.
    """
    logger.info("Starting Product Catalog API...", store_backend=settings.store_backend)

    if settings.store_backend == "redis":
        store = build_redis_store(settings)
        try:
            await store.connect()
        except Exception as e:
            logger.error("Failed to connect to Redis", error=str(e))
            raise
        _resources.redis_store = store
    else:
        store = InMemoryProductStore(default_page_size=settings.list_page_size)
        # No external change feed reads the in-memory log
        await _start_memory_relay(store)

    retry = build_retry_policy(settings)
    set_dependencies(
        list_use_case=ListProductsUseCase(store, page_size=settings.list_page_size, retry=retry),
        get_use_case=GetProductUseCase(store, retry=retry),
        put_use_case=PutProductUseCase(store, retry=retry),
        delete_use_case=DeleteProductUseCase(store, retry=retry),
    )

    logger.info("Product Catalog API started successfully")

    yield

    # Shutdown
    logger.info("Shutting down Product Catalog API...")

    if _resources.relay_task:
        _resources.relay_task.cancel()
        await asyncio.gather(_resources.relay_task, return_exceptions=True)

    if _resources.event_bus:
        await _resources.event_bus.stop()

    if _resources.redis_store:
        await _resources.redis_store.disconnect()

    logger.info("Product Catalog API shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Product Catalog API",
    description="Product catalog with change-stream driven domain events",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Metrics middleware
app.add_middleware(MetricsMiddleware)

# Request ID middleware
app.add_middleware(RequestIDMiddleware)

register_exception_handlers(app)

# Include routers
app.include_router(router)
app.include_router(system_router)


# Root endpoint
@app.get("/")
async def root() -> dict:
    """Root endpoint with service information."""
    return {
        "service": settings.app_name,
        "version": "1.0.0",
        "status": "running",
    }


if __name__ == "__main__":
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
    )
