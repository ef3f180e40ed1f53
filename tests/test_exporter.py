from __future__ import annotations

import csv
import io
import json
import random
from datetime import date, datetime, timedelta, timezone

import pytest

from models.errors import DecodeError, ValidationError
from models.records import GeneratorConfig, ModelType
from services.exporter import CSV_COLUMNS, ExportEncoder, ExportFormat
from services.generator import TelemetryGenerator

EXPORTED_AT = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)


@pytest.fixture()
def encoder() -> ExportEncoder:
    return ExportEncoder(clock=lambda: EXPORTED_AT)


@pytest.fixture()
def measurements():
    start = datetime(2024, 3, 1, 9, 0, 0, 123456, tzinfo=timezone.utc)
    ticks = iter(range(100))
    generator = TelemetryGenerator(
        config=GeneratorConfig(model_type=ModelType.aerofoil, angle_of_attack=4.0, turbulence=0.5),
        rng=random.Random(3),
        clock=lambda: start + timedelta(milliseconds=100 * next(ticks)),
    )
    return [generator.tick(i * 0.1) for i in range(5)]


def test_csv_has_header_and_one_row_per_measurement(encoder: ExportEncoder, measurements) -> None:
    text = encoder.encode(measurements, "csv")

    rows = list(csv.reader(io.StringIO(text)))
    assert rows[0][:7] == [
        "Timestamp",
        "Drag Coefficient",
        "Lift Coefficient",
        "Reynolds Number",
        "Velocity (m/s)",
        "Pressure (kPa)",
        "Temperature (°C)",
    ]
    assert len(rows) == 1 + len(measurements)
    assert all(len(row) == len(CSV_COLUMNS) for row in rows)

    first = rows[1]
    assert first[0] == "2024-03-01T09:00:00.123456Z"
    assert first[1] == f"{measurements[0].drag_coefficient:.6f}"
    assert first[4] == f"{measurements[0].wind_speed:.2f}"


def test_csv_header_can_be_suppressed(encoder: ExportEncoder, measurements) -> None:
    text = encoder.encode(measurements, ExportFormat.csv, include_headers=False)

    lines = text.splitlines()
    assert len(lines) == len(measurements)
    assert not lines[0].startswith("Timestamp")


def test_json_document_shape(encoder: ExportEncoder, measurements) -> None:
    document = json.loads(encoder.encode(measurements, "json"))

    assert document["metadata"] == {
        "exportDate": "2024-03-01T09:30:00Z",
        "dataPoints": 5,
        "format": "wind-tunnel-data",
    }
    first = document["data"][0]
    assert first["timestamp"] == "2024-03-01T09:00:00.123456Z"
    assert first["simulationConfig"]["modelType"] == "aerofoil"
    assert first["angleOfAttack"] == 4.0
    assert "strainGauge1" in first["sensorReadings"]


def test_json_data_survives_decode_and_reencode(measurements) -> None:
    original = ExportEncoder(clock=lambda: EXPORTED_AT).encode(measurements, "json")
    decoded = ExportEncoder().decode_json(original)
    reencoded = ExportEncoder(clock=lambda: EXPORTED_AT + timedelta(days=1)).encode(decoded, "json")

    assert decoded == measurements
    assert json.loads(reencoded)["data"] == json.loads(original)["data"]
    assert reencoded.split('"data"', 1)[1] == original.split('"data"', 1)[1]


def test_decode_rejects_malformed_documents(encoder: ExportEncoder) -> None:
    with pytest.raises(DecodeError):
        encoder.decode_json("not json")
    with pytest.raises(DecodeError):
        encoder.decode_json('{"metadata": {}}')
    with pytest.raises(DecodeError):
        encoder.decode_json('{"data": [{"timestamp": "nope"}]}')


def test_unknown_format_is_rejected(encoder: ExportEncoder, measurements) -> None:
    with pytest.raises(ValidationError):
        encoder.encode(measurements, "xlsx")


def test_filename_uses_iso_date() -> None:
    assert ExportEncoder.filename("run-7", "csv", today=date(2024, 5, 9)) == "run-7_2024-05-09.csv"
    assert ExportEncoder.filename("run-7", ExportFormat.json, today=date(2024, 5, 9)) == "run-7_2024-05-09.json"
