"""
Data Transfer Objects for the Product Catalog API.

Contains Pydantic models for request/response validation.
"""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from internal.domain.product import Product, ProductPage


class ProductRequest(BaseModel):
    """Request body for putting a product."""

    id: Optional[str] = Field(None, description="Product id; must match the path when given")
    name: str = Field(..., description="Product name")
    price: Decimal = Field(..., description="Non-negative price, two fractional digits")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"id": "p1", "name": "Widget", "price": "9.99"}
        }
    )


class ProductResponse(BaseModel):
    """Product representation returned by the API."""

    id: str = Field(..., description="Product id")
    name: str = Field(..., description="Product name")
    price: str = Field(..., description="Price as a decimal string")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"id": "p1", "name": "Widget", "price": "9.99"}
        }
    )

    @classmethod
    def from_domain(cls, product: Product) -> ProductResponse:
        """Build the response from a domain product."""
        return cls(**product.to_dict())


class ProductListResponse(BaseModel):
    """One page of products."""

    products: List[ProductResponse] = Field(default_factory=list)
    next: Optional[str] = Field(None, description="Cursor of the next page, absent on the last one")

    @classmethod
    def from_domain(cls, page: ProductPage) -> ProductListResponse:
        """Build the response from a domain page."""
        return cls(
            products=[ProductResponse.from_domain(p) for p in page.products],
            next=page.next_cursor,
        )


class ErrorResponse(BaseModel):
    """Error response body."""

    detail: str
    code: str
    request_id: Optional[str] = None
