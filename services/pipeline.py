"""Wiring of generator, store, recorder and relay."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from datastore.session_store import SessionRecorder
from models.errors import ValidationError
from models.records import GeneratorConfig, Measurement
from services.aggregator import Aggregator
from services.exporter import ExportEncoder
from services.generator import TelemetryGenerator
from services.relay import RelayHub, RelayServer
from services.runner import SimulationRunner
from settings import Settings, get_settings
from storage.measurement_store import MeasurementStore

logger = logging.getLogger(__name__)


class TelemetryPipeline:
    """Single mutation entry point for measurements.

    Local ticks and relayed ingestion both go through :meth:`ingest`, which
    holds one lock across store, session and broadcast so the relay sees
    measurements in exactly the order the store recorded them.
    """

    def __init__(self, store: MeasurementStore, recorder: SessionRecorder, hub: RelayHub) -> None:
        self.store = store
        self.recorder = recorder
        self.hub = hub
        self._lock = asyncio.Lock()

    async def ingest(self, measurement: Measurement) -> None:
        async with self._lock:
            self.store.record(measurement)
            if self.recorder.current_session() is not None:
                self.recorder.add_measurement(measurement)
            await self.hub.publish(measurement)


@dataclass
class TelemetryServices:
    """Every component the application owns, constructed once at the root."""

    settings: Settings
    generator: TelemetryGenerator
    store: MeasurementStore
    recorder: SessionRecorder
    exporter: ExportEncoder
    hub: RelayHub
    pipeline: TelemetryPipeline
    runner: SimulationRunner
    relay_server: RelayServer

    def update_config(self, partial: Mapping[str, Any]) -> GeneratorConfig:
        config = self.generator.config.merged(partial)
        self.generator.configure(config)
        logger.info("Simulation config updated", extra={"model_type": config.model_type.value})
        return config

    async def handle_command(self, command: Any) -> Optional[Dict[str, Any]]:
        """Apply a relay command; ``status`` answers only the client that asked."""
        action = command.get("action") if isinstance(command, dict) else command
        if action == "start":
            self.runner.start()
        elif action == "stop":
            self.runner.stop()
        elif action == "status":
            return {"running": self.runner.running, "ticks": self.runner.ticks}
        else:
            raise ValidationError(f"Unknown command {action!r}.")
        return None

    async def handle_config(self, payload: Any) -> None:
        if not isinstance(payload, dict):
            raise ValidationError("Config payload must be an object.")
        self.update_config(payload)

    async def handle_data(self, measurement: Measurement) -> None:
        await self.pipeline.ingest(measurement)

    async def shutdown(self) -> None:
        self.runner.stop()
        await self.runner.wait_stopped()
        await self.relay_server.stop()


def build_default_services(
    settings: Optional[Settings] = None,
    config: Optional[GeneratorConfig] = None,
    rng: Optional[random.Random] = None,
) -> TelemetryServices:
    """Factory that wires every component from ``settings``."""
    settings = settings or get_settings()
    generator = TelemetryGenerator(config=config, rng=rng)
    store = MeasurementStore(capacity=settings.history_capacity)
    recorder = SessionRecorder(
        aggregator=Aggregator(), max_measurements=settings.session_max_measurements
    )
    hub = RelayHub()
    pipeline = TelemetryPipeline(store=store, recorder=recorder, hub=hub)
    runner = SimulationRunner(
        generator=generator, sink=pipeline.ingest, interval_ms=settings.update_interval_ms
    )
    relay_server = RelayServer(hub=hub, host=settings.relay_host, port=settings.relay_port)
    services = TelemetryServices(
        settings=settings,
        generator=generator,
        store=store,
        recorder=recorder,
        exporter=ExportEncoder(),
        hub=hub,
        pipeline=pipeline,
        runner=runner,
        relay_server=relay_server,
    )
    hub.on_command = services.handle_command
    hub.on_config = services.handle_config
    hub.on_data = services.handle_data
    return services
