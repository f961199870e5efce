"""
Value Objects for the Product domain.

Value objects are immutable and defined by their attributes.
"""
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from functools import total_ordering
from typing import Any

from .errors import DomainValidationError


# Prices carry two fractional digits
PRICE_QUANTUM = Decimal("0.01")


@dataclass(frozen=True)
class Price:
    """
    Price value object representing a product price.

    Prices are fixed-point decimals with two fractional digits and are
    persisted as integer cents.

    Attributes:
        amount: The price amount.
    """
    amount: Decimal

    def __post_init__(self) -> None:
        """Validate price constraints."""
        if not isinstance(self.amount, Decimal):
            raise DomainValidationError("Price amount must be a decimal")
        if not self.amount.is_finite():
            raise DomainValidationError("Price amount must be finite")
        if self.amount < 0:
            raise DomainValidationError("Price amount cannot be negative")

    @classmethod
    def of(cls, value: Any) -> "Price":
        """
        Build a price from an int, str, float or Decimal.

        Floats go through their string form so 9.99 stays 9.99. The amount
        is rounded half-up to two fractional digits.

        Args:
            value: Raw price value.

        Returns:
            Price instance.

        Raises:
            DomainValidationError: If the value is not a valid price.
        """
        if isinstance(value, bool) or value is None:
            raise DomainValidationError(f"Invalid price: {value!r}")
        try:
            amount = value if isinstance(value, Decimal) else Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise DomainValidationError(f"Invalid price: {value!r}")
        if not amount.is_finite():
            raise DomainValidationError("Price amount must be finite")
        return cls(amount=amount.quantize(PRICE_QUANTUM, rounding=ROUND_HALF_UP))

    @classmethod
    def from_cents(cls, cents: int) -> "Price":
        """Build a price from its integer cents representation."""
        return cls(amount=(Decimal(int(cents)) * PRICE_QUANTUM).quantize(PRICE_QUANTUM))

    @property
    def cents(self) -> int:
        """Integer cents, the storage representation."""
        return int((self.amount / PRICE_QUANTUM).to_integral_value(rounding=ROUND_HALF_UP))

    def __str__(self) -> str:
        return str(self.amount.quantize(PRICE_QUANTUM))


@total_ordering
@dataclass(frozen=True, eq=False)
class SequenceToken:
    """
    Sequence token of a change record.

    Monotonic within a partition. Tokens are compared by their numeric
    components: ``"1700000000000-3"`` (Redis stream id) and
    ``"4421584500000000017450439091"`` (DynamoDB sequence number) both order
    numerically, never lexically.

    Attributes:
        value: The raw token string.
    """
    value: str

    def __post_init__(self) -> None:
        """Validate token constraints."""
        if not self.value:
            raise DomainValidationError("Sequence token cannot be empty")
        try:
            self.parts
        except ValueError:
            raise DomainValidationError(f"Invalid sequence token: {self.value!r}")

    @property
    def parts(self) -> tuple[int, ...]:
        """Numeric components used for ordering."""
        parts = tuple(int(p) for p in self.value.split("-"))
        if any(p < 0 for p in parts):
            raise ValueError(self.value)
        return parts

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SequenceToken):
            return NotImplemented
        return self.parts == other.parts

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, SequenceToken):
            return NotImplemented
        return self.parts < other.parts

    def __hash__(self) -> int:
        return hash(self.parts)

    def __str__(self) -> str:
        return self.value
