"""A string-keyed map that keeps its keys in sorted order."""

from __future__ import annotations

import bisect
from typing import Any


class SortedMap:
    """Mapping from strings to values whose keys are kept sorted on insertion."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}
        self._keys: list[str] = []

    def put(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key`` and insert the key in sorted position."""
        self._data[key] = value
        bisect.insort_left(self._keys, key)

    def get(self, key: str) -> Any:
        """Return the value stored under ``key``, or None if absent."""
        return self._data.get(key)

    def keys(self) -> list[str]:
        """Return the keys in ascending order."""
        return self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, key: object) -> bool:
        return key in self._data