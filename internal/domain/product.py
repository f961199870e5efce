"""
Domain model for the product catalog.

This module contains the core domain entities following DDD principles.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional

from .errors import DomainValidationError
from .value_objects import Price


@dataclass
class Product:
    """
    Product is the single aggregate of the catalog.

    Attributes:
        id: Opaque, externally assigned identifier (partition key).
        name: Display name of the product.
        price: Non-negative price with two fractional digits.
    """
    id: str
    name: str
    price: Decimal

    def __post_init__(self) -> None:
        """Normalize the price and validate domain invariants."""
        self.price = Price.of(self.price).amount
        self.validate()

    def validate(self) -> None:
        """
        Validate domain invariants.

        Raises:
            DomainValidationError: If validation fails.
        """
        if not isinstance(self.id, str) or not self.id.strip():
            raise DomainValidationError("id is required")
        if not isinstance(self.name, str) or not self.name.strip():
            raise DomainValidationError("name is required")
        Price.of(self.price)

    @property
    def price_cents(self) -> int:
        """Price in integer cents."""
        return Price.of(self.price).cents

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Product":
        """
        Build a product from its dictionary representation.

        Args:
            data: Mapping with ``id``, ``name`` and ``price``.

        Returns:
            Validated product.

        Raises:
            DomainValidationError: If a field is missing or invalid.
        """
        missing = [k for k in ("id", "name", "price") if k not in data]
        if missing:
            raise DomainValidationError(f"Missing product fields: {', '.join(missing)}")
        return cls(id=data["id"], name=data["name"], price=data["price"])

    def to_dict(self) -> dict:
        """
        Convert to dictionary representation.

        Returns:
            Dictionary with the price as a decimal string.
        """
        return {
            "id": self.id,
            "name": self.name,
            "price": str(Price.of(self.price)),
        }


@dataclass
class ProductPage:
    """
    One page of a product listing.

    Attributes:
        products: Products on this page.
        next_cursor: Opaque continuation cursor, None on the last page.
    """
    products: list[Product] = field(default_factory=list)
    next_cursor: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        data: dict[str, Any] = {"products": [p.to_dict() for p in self.products]}
        if self.next_cursor is not None:
            data["next"] = self.next_cursor
        return data
