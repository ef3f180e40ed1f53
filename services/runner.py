"""Periodic tick scheduling for the telemetry generator."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from models.errors import ValidationError
from models.records import Measurement
from services.generator import TelemetryGenerator

logger = logging.getLogger(__name__)

MIN_INTERVAL_MS = 10
MAX_INTERVAL_MS = 10_000

Sink = Callable[[Measurement], Awaitable[None]]


def validate_interval(interval_ms: int) -> int:
    if not MIN_INTERVAL_MS <= interval_ms <= MAX_INTERVAL_MS:
        raise ValidationError(
            f"Update interval must be between {MIN_INTERVAL_MS} and {MAX_INTERVAL_MS} ms."
        )
    return interval_ms


class SimulationRunner:
    """Drives ``generator.tick`` on an asyncio task and feeds ``sink``.

    ``clock`` returns monotonic seconds and is injectable so elapsed time can
    be controlled in tests. Once :meth:`stop` returns no new tick starts; a tick
    already handing its measurement to ``sink`` is allowed to finish so the
    store and the relay never disagree. A failing tick stops the runner.
    """

    def __init__(
        self,
        generator: TelemetryGenerator,
        sink: Sink,
        interval_ms: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.generator = generator
        self.sink = sink
        self.interval_ms = validate_interval(interval_ms)
        self._clock = clock
        self._task: Optional[asyncio.Task[None]] = None
        self._running = False
        self._base_time = 0.0
        self._in_tick = False
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._running

    def set_interval(self, interval_ms: int) -> None:
        self.interval_ms = validate_interval(interval_ms)

    def start(self) -> bool:
        """Schedule ticks on the running loop; returns False if already running."""
        if self._running and self._task is not None and not self._task.done():
            return False
        self._running = True
        self._base_time = self._clock()
        self._task = asyncio.get_running_loop().create_task(self._loop())
        logger.info(
            "Simulation started",
            extra={"model_type": self.generator.config.model_type.value},
        )
        return True

    def stop(self) -> bool:
        if not self._running:
            return False
        self._running = False
        task = self._task
        # A tick in flight finishes its sink call; only the sleep is cancelled.
        if task is not None and not task.done() and not self._in_tick:
            task.cancel()
        logger.info("Simulation stopped", extra={"measurement_count": self.ticks})
        return True

    async def wait_stopped(self) -> None:
        """Wait until the tick task has finished its last tick or unwound."""
        task = self._task
        if task is not None and not self._running:
            await asyncio.gather(task, return_exceptions=True)

    async def tick_once(self) -> Measurement:
        elapsed = self._clock() - self._base_time
        measurement = self.generator.tick(elapsed)
        self.ticks += 1
        await self.sink(measurement)
        return measurement

    async def _loop(self) -> None:
        me = asyncio.current_task()
        while self._running and self._task is me:
            self._in_tick = True
            try:
                await self.tick_once()
            except Exception:
                logger.exception(
                    "Simulation tick failed; stopping", extra={"measurement_count": self.ticks}
                )
                if self._task is me:
                    self._running = False
                return
            finally:
                self._in_tick = False
            if not self._running or self._task is not me:
                break
            await asyncio.sleep(self.interval_ms / 1000)
