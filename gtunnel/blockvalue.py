"""A value whose readers wait until it has been set once."""

from __future__ import annotations

import threading
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class BlockValue(Generic[T]):
    """Holds a value; ``get`` blocks until the first ``set``."""

    def __init__(self) -> None:
        self._ready = threading.Event()
        self._value: Optional[T] = None

    def get(self, timeout: Optional[float] = None) -> T:
        """Return the value, waiting for it to be set.

        Raises TimeoutError if ``timeout`` seconds pass first.
        """
        if not self._ready.wait(timeout):
            raise TimeoutError("value was not set in time")
        return self._value  # type: ignore[return-value]

    def set(self, value: T) -> None:
        """Store the value and release all waiting readers."""
        self._value = value
        self._ready.set()