"""A thread-safe mapping with atomic load-or-store operations."""

from __future__ import annotations

import threading
from typing import Any, Callable, Hashable, Iterator, Tuple


class ConcurrentMap:
    """A dictionary that many threads may use at once.

    Every operation is atomic with respect to the others. Iteration works
    on a snapshot, so callbacks may modify the map while it is ranged over.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._data: dict[Hashable, Any] = {}

    def load(self, key: Hashable) -> Tuple[Any, bool]:
        """Return ``(value, True)`` if present, else ``(None, False)``."""
        with self._lock:
            if key in self._data:
                return self._data[key], True
            return None, False

    def store(self, key: Hashable, value: Any) -> None:
        """Set the value for ``key``."""
        with self._lock:
            self._data[key] = value

    def load_or_store(self, key: Hashable, value: Any) -> Tuple[Any, bool]:
        """Return the existing value and True, or store ``value`` and return it with False."""
        with self._lock:
            if key in self._data:
                return self._data[key], True
            self._data[key] = value
            return value, False

    def load_or_create(self, key: Hashable, create: Callable[[], Any]) -> Tuple[Any, bool]:
        """Like ``load_or_store`` but builds the value with ``create`` only when absent.

        ``create`` is called at most once per call and never when the key exists.
        """
        with self._lock:
            if key in self._data:
                return self._data[key], True
            value = create()
            self._data[key] = value
            return value, False

    def load_and_delete(self, key: Hashable) -> Tuple[Any, bool]:
        """Remove ``key``, returning its previous value and whether it was present."""
        with self._lock:
            if key in self._data:
                return self._data.pop(key), True
            return None, False

    def delete(self, key: Hashable) -> None:
        """Remove ``key`` if present."""
        self.load_and_delete(key)

    def range(self, fn: Callable[[Hashable, Any], bool]) -> None:
        """Call ``fn(key, value)`` for each entry until it returns a false value.

        Each key is visited at most once. Keys deleted during the walk are
        skipped; a value changed during the walk may be seen old or new.
        """
        for key, value in self.items():
            if not fn(key, value):
                break

    def items(self) -> Iterator[Tuple[Hashable, Any]]:
        """Yield the entries present when iteration starts, skipping later deletions."""
        with self._lock:
            keys = list(self._data)
        for key in keys:
            value, found = self.load(key)
            if found:
                yield key, value

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._data