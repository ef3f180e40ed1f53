from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

import pytest

from models.records import Measurement, SensorReadings

MeasurementFactory = Callable[..., Measurement]


def build_measurement(
    drag: float = 0.3, index: int = 0, drag_coefficient: float = 0.3
) -> Measurement:
    """Deterministic measurement whose wind speed and timestamp follow ``index``."""
    return Measurement(
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=index),
        wind_speed=25.0 + index,
        temperature=22.5,
        humidity=50.0,
        pressure=101.3,
        drag_force=drag,
        lift_force=0.1,
        drag_coefficient=drag_coefficient,
        lift_coefficient=0.1,
        reynolds_number=1.6e6,
        mach_number=0.07,
        angle_of_attack=0.0,
        sensor_readings=SensorReadings(
            strain_gauge1=drag / 4,
            strain_gauge2=drag / 4,
            strain_gauge3=drag / 4,
            strain_gauge4=drag / 4,
            pressure_sensor1=101.3,
            pressure_sensor2=101.3,
            pressure_sensor3=101.3,
            pressure_sensor4=101.3,
        ),
    )


@pytest.fixture()
def make_measurement() -> MeasurementFactory:
    return build_measurement
