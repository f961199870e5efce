"""
Binary encoding of products stored in Redis.

Products are packed with msgpack as ``{id, name, price_cents}``; the price is
kept as integer cents so no float ever reaches storage.
"""
from typing import Optional

import msgpack

from internal.domain.product import Product
from internal.domain.value_objects import Price


def encode_product(product: Product) -> bytes:
    """Pack a product for storage."""
    return msgpack.packb(
        {
            "id": product.id,
            "name": product.name,
            "price_cents": product.price_cents,
        },
        use_bin_type=True,
    )


def decode_product(data: Optional[bytes]) -> Optional[Product]:
    """
    Unpack a stored product.

    Args:
        data: Packed product; empty or None means no image.

    Returns:
        The product, or None for an empty value.

    Raises:
        ValueError: If the data is not a packed product.
        DomainValidationError: If the packed fields are invalid.
    """
    if not data:
        return None
    try:
        value = msgpack.unpackb(data, raw=False)
    except (msgpack.UnpackException, ValueError) as e:
        raise ValueError(f"undecodable product image: {e}") from e
    if not isinstance(value, dict):
        raise ValueError("product image is not a map")
    try:
        cents = value["price_cents"]
        return Product(
            id=value["id"],
            name=value["name"],
            price=Price.from_cents(cents).amount,
        )
    except (KeyError, TypeError) as e:
        raise ValueError(f"incomplete product image: {e}") from e
