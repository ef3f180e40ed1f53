"""Aggregation logic for recorded measurements."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Optional

from models.records import Measurement


@dataclass
class FieldSummary:
    """Running min/max/avg for one measurement channel."""

    min: float | None = None
    max: float | None = None
    avg: float | None = None
    _total: float = field(default=0.0, repr=False, compare=False)
    _count: int = field(default=0, repr=False, compare=False)

    def add(self, value: float) -> None:
        self._count += 1
        self._total += value
        if self.min is None or value < self.min:
            self.min = value
        if self.max is None or value > self.max:
            self.max = value
        self.avg = self._total / self._count


@dataclass
class SessionStats:
    """Computed statistics for a session's measurements."""

    count: int = 0
    duration_seconds: float = 0.0
    drag: FieldSummary = field(default_factory=FieldSummary)
    lift: FieldSummary = field(default_factory=FieldSummary)
    velocity: FieldSummary = field(default_factory=FieldSummary)
    pressure: FieldSummary = field(default_factory=FieldSummary)


_CHANNELS: Dict[str, Callable[[Measurement], float]] = {
    "drag": lambda m: m.drag_coefficient,
    "lift": lambda m: m.lift_coefficient,
    "velocity": lambda m: m.wind_speed,
    "pressure": lambda m: m.pressure,
}


class Aggregator:
    """Pure aggregation component that can be unit tested in isolation."""

    def aggregate(
        self, measurements: Iterable[Measurement], duration_seconds: float = 0.0
    ) -> Optional[SessionStats]:
        stats = SessionStats(duration_seconds=duration_seconds)

        for measurement in measurements:
            stats.count += 1
            for name, extract in _CHANNELS.items():
                summary: FieldSummary = getattr(stats, name)
                summary.add(extract(measurement))

        if not stats.count:
            return None
        return stats
