"""
Change records observed on the product table.

A change record is the normalized shape of one storage mutation, produced by
the store's change feed and owned by the translator for one delivery attempt.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from .errors import DomainValidationError, MalformedChangeRecordError
from .product import Product
from .value_objects import SequenceToken


class ChangeKind(str, Enum):
    """Kind of mutation."""

    INSERT = "INSERT"
    MODIFY = "MODIFY"
    REMOVE = "REMOVE"


@dataclass
class ChangeRecord:
    """
    One observed mutation of the backing store.

    Feed parsers build records leniently; ``validate()`` enforces the
    invariants so a bad record can be isolated instead of failing the batch.

    Attributes:
        record_id: Feed-level identifier reported back in batch results.
        kind: INSERT, MODIFY or REMOVE.
        key: Product id the mutation applies to.
        sequence_token: Monotonic-within-partition token.
        old_image: Product before the mutation (MODIFY, REMOVE).
        new_image: Product after the mutation (INSERT, MODIFY).
        arrival_time: When the feed observed the mutation.
    """
    record_id: str
    kind: ChangeKind
    key: str
    sequence_token: str
    old_image: Optional[Product] = None
    new_image: Optional[Product] = None
    arrival_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def token(self) -> SequenceToken:
        """Parsed sequence token."""
        return SequenceToken(self.sequence_token)

    def validate(self) -> None:
        """
        Check the record invariants.

        Raises:
            MalformedChangeRecordError: If an invariant is violated.
        """
        if not self.key:
            raise MalformedChangeRecordError(self.record_id, "missing key")
        try:
            self.token
        except DomainValidationError as e:
            raise MalformedChangeRecordError(self.record_id, e.message)

        if self.kind == ChangeKind.INSERT:
            if self.new_image is None:
                raise MalformedChangeRecordError(self.record_id, "INSERT without new image")
            if self.old_image is not None:
                raise MalformedChangeRecordError(self.record_id, "INSERT with old image")
        elif self.kind == ChangeKind.REMOVE:
            if self.old_image is None:
                raise MalformedChangeRecordError(self.record_id, "REMOVE without old image")
            if self.new_image is not None:
                raise MalformedChangeRecordError(self.record_id, "REMOVE with new image")
        elif self.kind == ChangeKind.MODIFY:
            if self.old_image is None or self.new_image is None:
                raise MalformedChangeRecordError(self.record_id, "MODIFY needs both images")
        else:
            raise MalformedChangeRecordError(self.record_id, f"unknown kind {self.kind!r}")

        for image in (self.old_image, self.new_image):
            if image is not None and image.id != self.key:
                raise MalformedChangeRecordError(
                    self.record_id,
                    f"image id {image.id!r} does not match key {self.key!r}",
                )

    @property
    def is_noop(self) -> bool:
        """True for a MODIFY that rewrote identical data."""
        return self.kind == ChangeKind.MODIFY and self.old_image == self.new_image
