"""A map from (stack, tag) pairs to cumulative counters."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator


@dataclass(eq=False)
class ProfMapEntry:
    """One (stack, tag) entry with the last seen pair of counters.

    For heap profiles ``v1``/``v2`` are allocated objects and bytes; for
    mutex and block profiles they are contention count and duration.
    """

    stk: tuple[int, ...]
    tag: int
    v1: int = 0
    v2: int = 0


class ProfMap:
    """Grows without bound; entries are kept in insertion order."""

    def __init__(self) -> None:
        self._entries: dict[tuple[tuple[int, ...], int], ProfMapEntry] = {}

    def lookup(self, stk: Iterable[int], tag: int) -> ProfMapEntry:
        """Return the entry for ``(stk, tag)``, creating it if needed."""
        stack = tuple(stk)
        key = (stack, tag)
        entry = self._entries.get(key)
        if entry is None:
            entry = ProfMapEntry(stk=stack, tag=tag)
            self._entries[key] = entry
        return entry

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ProfMapEntry]:
        return iter(self._entries.values())