"""
Kafka infrastructure package.
"""
from .producer import KafkaEventBus

__all__ = ["KafkaEventBus"]
