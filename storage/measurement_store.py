from __future__ import annotations

from collections import deque
from threading import Lock
from typing import Deque, Optional, Tuple

from models.records import Measurement

DEFAULT_HISTORY_CAPACITY = 100


class MeasurementStore:
    """Latest measurement plus a fixed-size FIFO window of recent ones."""

    def __init__(self, capacity: int = DEFAULT_HISTORY_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("History capacity must be positive.")
        self.capacity = capacity
        self._history: Deque[Measurement] = deque(maxlen=capacity)
        self._current: Optional[Measurement] = None
        self._lock = Lock()

    def record(self, measurement: Measurement) -> None:
        with self._lock:
            self._history.append(measurement)
            self._current = measurement

    def current(self) -> Optional[Measurement]:
        with self._lock:
            return self._current

    def history(self) -> Tuple[Measurement, ...]:
        """Return an ordered snapshot, oldest first."""

        with self._lock:
            return tuple(self._history)

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._history)
