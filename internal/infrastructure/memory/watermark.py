"""
In-memory watermark store.
"""
from collections import OrderedDict
from typing import Optional

from internal.domain.value_objects import SequenceToken


class InMemoryWatermarkStore:
    """
    Bounded, process-local watermarks.

    Least recently touched keys are evicted beyond ``max_keys``, which limits
    deduplication to recent redeliveries. Across processes deduplication is
    best effort and subscribers must tolerate duplicates.
    """

    def __init__(self, max_keys: int = 10_000) -> None:
        """
        Initialize the store.

        Args:
            max_keys: Maximum number of keys remembered.
        """
        self._max_keys = max_keys
        self._marks: "OrderedDict[str, SequenceToken]" = OrderedDict()

    async def get(self, key: str) -> Optional[SequenceToken]:
        """Get the watermark of a key."""
        token = self._marks.get(key)
        if token is not None:
            self._marks.move_to_end(key)
        return token

    async def advance(self, key: str, token: SequenceToken) -> None:
        """Move the watermark of a key forward."""
        current = self._marks.get(key)
        if current is None or token > current:
            self._marks[key] = token
        self._marks.move_to_end(key)
        while len(self._marks) > self._max_keys:
            self._marks.popitem(last=False)

    def __len__(self) -> int:
        return len(self._marks)
