"""Domain models shared across services."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from models.errors import ValidationError

AIR_DENSITY = 1.225  # kg/m^3
DYNAMIC_VISCOSITY = 1.81e-5  # Pa*s
SPEED_OF_SOUND = 343.2  # m/s at 20 degC
MAX_WIND_SPEED = 150.0  # m/s, either direction


class _WireModel(BaseModel):
    """Immutable model serialised with camelCase keys on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        protected_namespaces=(),
        frozen=True,
    )


class ModelType(str, Enum):
    car = "car"
    aerofoil = "aerofoil"
    building = "building"
    custom = "custom"


class Vector3(_WireModel):
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


class SensorReadings(_WireModel):
    """Strain gauges split the drag force; pressure taps sample the surface."""

    strain_gauge1: float
    strain_gauge2: float
    strain_gauge3: float
    strain_gauge4: float
    pressure_sensor1: float
    pressure_sensor2: float
    pressure_sensor3: float
    pressure_sensor4: float


class EnvironmentalFactors(_WireModel):
    air_density: float = AIR_DENSITY
    dynamic_viscosity: float = DYNAMIC_VISCOSITY
    speed_of_sound: float = SPEED_OF_SOUND


class SimulationSnapshot(_WireModel):
    """Generator settings active when a measurement was produced."""

    scenario: str = "standard"
    model_type: ModelType = ModelType.car
    wind_tunnel_length: float = 10.0
    wind_tunnel_width: float = 2.0
    wind_tunnel_height: float = 2.0


class Measurement(_WireModel):
    """A single synthesized wind tunnel reading."""

    timestamp: datetime
    wind_speed: float
    temperature: float
    humidity: float
    pressure: float
    drag_force: float
    lift_force: float
    drag_coefficient: float
    lift_coefficient: float
    reynolds_number: float
    mach_number: float
    angle_of_attack: float
    model_position: Vector3 = Field(default_factory=Vector3)
    model_rotation: Vector3 = Field(default_factory=Vector3)
    sensor_readings: SensorReadings
    environmental_factors: EnvironmentalFactors = Field(default_factory=EnvironmentalFactors)
    simulation_config: SimulationSnapshot = Field(default_factory=SimulationSnapshot)

    @field_validator("timestamp")
    @classmethod
    def _normalise_timestamp(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class GeneratorConfig(BaseModel):
    """Caller-owned simulation settings; the generator reads one snapshot per tick."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        protected_namespaces=(),
        validate_assignment=True,
        allow_inf_nan=False,
    )

    wind_speed: float = Field(25.0, ge=-MAX_WIND_SPEED, le=MAX_WIND_SPEED)  # m/s
    model_type: ModelType = ModelType.car
    angle_of_attack: float = Field(0.0, ge=-90.0, le=90.0)  # degrees
    temperature: float = Field(22.5, ge=-60.0, le=80.0)  # degC
    pressure: float = Field(101.3, ge=50.0, le=150.0)  # kPa
    humidity: float = Field(50.0, ge=0.0, le=100.0)  # %
    turbulence: float = 0.1  # 0-1

    @field_validator("turbulence")
    @classmethod
    def _clamp_turbulence(cls, value: float) -> float:
        return min(1.0, max(0.0, value))

    @classmethod
    def parse(cls, payload: Mapping[str, Any]) -> "GeneratorConfig":
        try:
            return cls.model_validate(dict(payload))
        except pydantic.ValidationError as exc:
            raise ValidationError(_describe(exc)) from exc

    def merged(self, partial: Mapping[str, Any]) -> "GeneratorConfig":
        """Return a new validated config with ``partial`` applied on top."""
        known = set(type(self).model_fields)
        aliases = {info.alias: name for name, info in type(self).model_fields.items()}
        updates: dict[str, Any] = {}
        for key, value in partial.items():
            name = aliases.get(key, key)
            if name not in known:
                raise ValidationError(f"Unknown configuration field {key!r}.")
            updates[name] = value
        return type(self).parse({**self.model_dump(), **updates})

    def snapshot(self) -> "GeneratorConfig":
        return self.model_copy()


def _describe(exc: pydantic.ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "value"
        parts.append(f"{location}: {error.get('msg')}")
    return "; ".join(parts) or "invalid configuration"


def is_finite_measurement(measurement: Measurement) -> bool:
    """True when every numeric field of ``measurement`` is finite."""

    def _walk(value: Any) -> bool:
        if isinstance(value, bool):
            return True
        if isinstance(value, (int, float)):
            return math.isfinite(value)
        if isinstance(value, BaseModel):
            return all(_walk(getattr(value, name)) for name in type(value).model_fields)
        return True

    return _walk(measurement)
