"""Domain layer: Core entities shared by the flows.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")

EVENT_START_FAILED = "start_failed"


class AtomicCell(Generic[T]):
    """Holds one value that is always replaced whole, never mutated in place."""

    def __init__(self, value: T) -> None:
        self._value = value
        self._lock = threading.Lock()

    def get(self) -> T:
        with self._lock:
            return self._value

    def set(self, value: T) -> None:
        with self._lock:
            self._value = value

    def swap(self, value: T) -> T:
        """Replace the value and return the previous one."""
        with self._lock:
            previous, self._value = self._value, value
            return previous


@dataclass(frozen=True)
class RefreshResult:
    """Outcome of a successful lease refresh."""

    short_url: str
    expire_at: int
    token: bytes | None = None
