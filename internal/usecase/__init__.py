"""
Use case package for Product Catalog.

Contains the catalog operations, the ports they depend on and the change
stream translator.
"""
from .ports import EventBus, ProductStore, WatermarkStore
from .list_products import ListProductsInput, ListProductsUseCase
from .get_product import GetProductUseCase
from .put_product import PutProductInput, PutProductUseCase
from .delete_product import DeleteProductUseCase
from .translate_changes import (
    BatchResult,
    RecordOutcome,
    RecordResult,
    StreamTranslator,
)

__all__ = [
    "EventBus",
    "ProductStore",
    "WatermarkStore",
    "ListProductsInput",
    "ListProductsUseCase",
    "GetProductUseCase",
    "PutProductInput",
    "PutProductUseCase",
    "DeleteProductUseCase",
    "BatchResult",
    "RecordOutcome",
    "RecordResult",
    "StreamTranslator",
]
