"""
Product catalog settings.

Configuration loaded from environment variables and an optional .env file.
"""
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Product catalog configuration."""

    app_name: str = "product-catalog"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # HTTP
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: str = "*"

    # Storage
    store_backend: Literal["memory", "redis"] = "redis"
    redis_url: str = "redis://localhost:6379/0"
    redis_key_prefix: str = "catalog"
    redis_socket_timeout: float = 2.0
    store_operation_timeout: float = 3.0
    store_retry_attempts: int = 3
    store_retry_base_delay: float = 0.1
    store_retry_max_delay: float = 2.0
    store_circuit_failure_threshold: int = 5
    store_circuit_recovery_timeout: float = 30.0
    change_stream_max_length: int = 100_000
    list_page_size: int = 100

    # Event bus
    event_bus_backend: Literal["memory", "kafka"] = "kafka"
    kafka_bootstrap_servers: str = "localhost:9092"
    kafka_events_topic: str = "product-events"
    kafka_client_id: str = "product-catalog"
    publish_timeout: float = 5.0

    # Change stream translation
    watermark_backend: Literal["memory", "redis"] = "redis"
    watermark_ttl_seconds: int = 86_400
    watermark_max_keys: int = 10_000
    suppress_unchanged: bool = True
    translator_max_concurrency: int = 16
    batch_timeout: float = 30.0

    # Change feed worker
    feed_group: str = "product-events-publisher"
    feed_consumer: str = "worker-1"
    feed_batch_size: int = 100
    feed_block_ms: int = 1000
    feed_claim_idle_ms: int = 60_000
    feed_retry_backoff: float = 1.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    def get_cors_origins(self) -> list[str]:
        """
        Get list of allowed CORS origins.

        Returns:
            Origins from the comma-separated setting.
        """
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance.
    """
    return Settings()
