"""Bounded anti-repeat cache of recently shown pairs."""

from collections import OrderedDict

from src.selection.schemas import pair_key


class RecentPairs:
    """
    Remembers the last ``max_size`` unordered pairs; oldest evicted first.

    Re-adding a pair moves it to the newest position.
    """

    def __init__(self, max_size: int = 1500):
        if max_size < 1:
            raise ValueError(f"max_size must be positive, got {max_size}")
        self._max_size = max_size
        self._pairs: OrderedDict[tuple[str, str], None] = OrderedDict()

    def __len__(self) -> int:
        return len(self._pairs)

    def __contains__(self, key: object) -> bool:
        return key in self._pairs

    @property
    def max_size(self) -> int:
        return self._max_size

    def contains(self, a: str, b: str) -> bool:
        return pair_key(a, b) in self._pairs

    def add(self, a: str, b: str) -> None:
        key = pair_key(a, b)
        if key in self._pairs:
            self._pairs.move_to_end(key)
            return
        self._pairs[key] = None
        while len(self._pairs) > self._max_size:
            self._pairs.popitem(last=False)

    def clear(self) -> None:
        self._pairs.clear()
