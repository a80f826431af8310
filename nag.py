from collections import OrderedDict
from typing import Iterable, List, Optional

DEFAULT_THRESHOLDS = (60, 30, 15)
DEFAULT_CAPACITY = 100


def nag_thresholds(thresholds: Iterable[int], max_minutes: float) -> List[int]:
    """Keep the thresholds (in their given order) that are still ahead of *max_minutes*."""
    return [t for t in thresholds if t < max_minutes]


class NagCache:
    """
    Race id -> thresholds (minutes before start) not yet nagged, smallest first so the
    next one due sits at the tail.

    Least recently touched races are evicted once the cache is full. An evicted
    race that comes back is re-initialised against the time remaining then, so
    thresholds it already passed are dropped rather than fired late.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._entries: "OrderedDict[int, List[int]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, race_id) -> bool:
        return race_id in self._entries

    def get(self, race_id) -> Optional[List[int]]:
        remaining = self._entries.get(race_id)
        if remaining is not None:
            self._entries.move_to_end(race_id)
        return remaining

    def put(self, race_id, remaining: List[int]) -> None:
        self._entries[race_id] = remaining
        self._entries.move_to_end(race_id)
        while len(self._entries) > self.capacity:
            self._entries.popitem(last=False)

    def discard(self, race_id) -> None:
        self._entries.pop(race_id, None)

    def due(self, race_id, minutes_until_start: float, thresholds: Iterable[int] = DEFAULT_THRESHOLDS) -> Optional[int]:
        """
        Return the threshold to nag for now, or None.

        Every threshold crossed since the last call is consumed, but only one
        nag (for the smallest of them) is reported.
        """
        remaining = self.get(race_id)
        if remaining is None:
            remaining = nag_thresholds(sorted(set(thresholds)), minutes_until_start)
            self.put(race_id, remaining)
            return None

        fired = None
        while remaining and minutes_until_start < remaining[-1]:
            fired = remaining.pop()
        return fired
