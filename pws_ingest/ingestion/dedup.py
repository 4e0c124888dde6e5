from __future__ import annotations

from collections import defaultdict
from typing import DefaultDict, Iterable, Set, Tuple


class DeduplicationIndex:
    """Station id -> set of local timestamps already persisted.

    A process-local cache of what the store holds. It only grows, and
    `mark_known` must only be called once the store has the row, so the
    index never claims a write that did not happen. After a crash it is
    rebuilt from a full store scan with `load`.
    """

    def __init__(self) -> None:
        self._known: DefaultDict[str, Set[str]] = defaultdict(set)
        self._size = 0

    def is_known(self, station_id: str, observed_at: str) -> bool:
        times = self._known.get(station_id)
        return times is not None and observed_at in times

    def mark_known(self, station_id: str, observed_at: str) -> None:
        times = self._known[station_id]
        if observed_at not in times:
            times.add(observed_at)
            self._size += 1

    def load(self, keys: Iterable[Tuple[str, str]]) -> int:
        """Add every ``(station_id, observed_at)`` pair; returns the index size."""
        for station_id, observed_at in keys:
            self.mark_known(station_id, observed_at)
        return self._size

    @property
    def stations(self) -> int:
        return len(self._known)

    def __len__(self) -> int:
        return self._size
