"""Synthetic aerodynamic telemetry.

Every tick is a pure function of elapsed time, the active configuration, the
injected clock and the injected random stream. Slow sinusoidal drift models
environmental change; uniform noise scaled by the configured turbulence
models sensor jitter.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from models.records import (
    AIR_DENSITY,
    SPEED_OF_SOUND,
    EnvironmentalFactors,
    GeneratorConfig,
    Measurement,
    ModelType,
    SensorReadings,
    SimulationSnapshot,
)

CHARACTERISTIC_LENGTH = 1.0  # m
KINEMATIC_VISCOSITY = 1.5e-5  # m^2/s, air at 20 degC
AEROFOIL_LIFT_SLOPE = 0.1  # per degree
AEROFOIL_BASE_DRAG = 0.02

_PRESSURE_TAP_SHARES = (0.5, 0.3, 0.7, 0.4)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TunnelGeometry:
    length: float = 10.0
    width: float = 2.0
    height: float = 2.0


@dataclass(frozen=True)
class Coefficients:
    drag: float
    lift: float


@dataclass(frozen=True)
class _Noise:
    drag: float
    lift: float
    reynolds: float
    velocity: float
    pressure: float
    temperature: float
    gauges: tuple[float, float, float, float]


def aerodynamic_coefficients(
    model_type: ModelType, angle_of_attack: float, elapsed: float
) -> Coefficients:
    """Drag and lift coefficients for ``model_type`` at ``elapsed`` seconds."""
    jitter = math.sin(elapsed * 0.5) * 0.1

    if model_type is ModelType.car:
        return Coefficients(
            drag=0.3 + math.sin(elapsed * 0.2) * 0.05 + jitter,
            lift=0.1 + math.cos(elapsed * 0.3) * 0.02 + jitter,
        )
    if model_type is ModelType.aerofoil:
        angle_rad = math.radians(angle_of_attack)
        return Coefficients(
            drag=AEROFOIL_BASE_DRAG + angle_of_attack**2 * 0.001 + jitter,
            lift=AEROFOIL_LIFT_SLOPE * angle_of_attack + math.sin(angle_rad) * 0.2 + jitter,
        )
    if model_type is ModelType.building:
        return Coefficients(
            drag=1.2 + math.sin(elapsed * 0.1) * 0.1 + jitter,
            lift=math.cos(elapsed * 0.4) * 0.01 + jitter,
        )
    return Coefficients(
        drag=0.5 + math.sin(elapsed * 0.3) * 0.08 + jitter,
        lift=0.2 + math.cos(elapsed * 0.2) * 0.05 + jitter,
    )


def dynamic_force(coefficient: float, velocity: float, air_density: float = AIR_DENSITY) -> float:
    return coefficient * 0.5 * air_density * velocity * velocity


def reynolds_number(velocity: float) -> float:
    return velocity * CHARACTERISTIC_LENGTH / KINEMATIC_VISCOSITY


def mach_number(velocity: float) -> float:
    return velocity / SPEED_OF_SOUND


class TelemetryGenerator:
    """Produces one :class:`Measurement` per call to :meth:`tick`."""

    def __init__(
        self,
        config: Optional[GeneratorConfig] = None,
        rng: Optional[random.Random] = None,
        clock: Clock = _utc_now,
        geometry: TunnelGeometry = TunnelGeometry(),
        scenario: str = "standard",
    ) -> None:
        self._config = (config or GeneratorConfig()).snapshot()
        self._rng = rng or random.Random()
        self._clock = clock
        self.geometry = geometry
        self.scenario = scenario

    @property
    def config(self) -> GeneratorConfig:
        return self._config.snapshot()

    def configure(self, config: GeneratorConfig) -> None:
        """Swap in a new configuration; the next tick sees all of it."""
        self._config = config.snapshot()

    def tick(self, elapsed_seconds: float) -> Measurement:
        config = self._config
        elapsed = max(0.0, elapsed_seconds)
        noise = self._noise(config.turbulence)

        temperature_drift = math.sin(elapsed * 0.1) * 0.5
        pressure_drift = math.cos(elapsed * 0.05) * 0.2

        coefficients = aerodynamic_coefficients(config.model_type, config.angle_of_attack, elapsed)
        wind_speed = config.wind_speed
        drag_force = dynamic_force(coefficients.drag, wind_speed)
        lift_force = dynamic_force(coefficients.lift, wind_speed)

        gauges = [drag_force * 0.25 + jitter for jitter in noise.gauges]
        taps = [config.pressure + pressure_drift * share for share in _PRESSURE_TAP_SHARES]

        return Measurement(
            timestamp=self._clock(),
            wind_speed=wind_speed + noise.velocity,
            temperature=config.temperature + temperature_drift + noise.temperature,
            humidity=config.humidity,
            pressure=config.pressure + pressure_drift + noise.pressure,
            drag_force=drag_force + noise.drag,
            lift_force=lift_force + noise.lift,
            drag_coefficient=coefficients.drag,
            lift_coefficient=coefficients.lift,
            reynolds_number=reynolds_number(wind_speed) + noise.reynolds,
            mach_number=mach_number(wind_speed),
            angle_of_attack=config.angle_of_attack,
            sensor_readings=SensorReadings(
                strain_gauge1=gauges[0],
                strain_gauge2=gauges[1],
                strain_gauge3=gauges[2],
                strain_gauge4=gauges[3],
                pressure_sensor1=taps[0],
                pressure_sensor2=taps[1],
                pressure_sensor3=taps[2],
                pressure_sensor4=taps[3],
            ),
            environmental_factors=EnvironmentalFactors(),
            simulation_config=SimulationSnapshot(
                scenario=self.scenario,
                model_type=config.model_type,
                wind_tunnel_length=self.geometry.length,
                wind_tunnel_width=self.geometry.width,
                wind_tunnel_height=self.geometry.height,
            ),
        )

    def _noise(self, turbulence: float) -> _Noise:
        def sample(amplitude: float) -> float:
            return (self._rng.random() - 0.5) * amplitude * turbulence

        return _Noise(
            drag=sample(0.02),
            lift=sample(0.01),
            reynolds=sample(0.1) * 10_000,
            velocity=sample(0.5) * 2,
            pressure=sample(0.1),
            temperature=sample(0.2),
            gauges=(sample(0.002), sample(0.002), sample(0.002), sample(0.002)),
        )
