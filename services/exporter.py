"""Delimited-text and structured-text encoders for measurement sets."""

from __future__ import annotations

import csv
import io
import json
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, Sequence

import pydantic
from pydantic import TypeAdapter

from models.errors import DecodeError, ValidationError
from models.records import Measurement

EXPORT_FORMAT_TAG = "wind-tunnel-data"


class ExportFormat(str, Enum):
    csv = "csv"
    json = "json"


_MIME_TYPES = {
    ExportFormat.csv: "text/csv",
    ExportFormat.json: "application/json",
}


def _iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _fixed(digits: int) -> Callable[[float], str]:
    return lambda value: f"{value:.{digits}f}"


# (header, accessor, formatter)
CSV_COLUMNS: Sequence[tuple[str, Callable[[Measurement], Any], Callable[[Any], str]]] = (
    ("Timestamp", lambda m: m.timestamp, _iso),
    ("Drag Coefficient", lambda m: m.drag_coefficient, _fixed(6)),
    ("Lift Coefficient", lambda m: m.lift_coefficient, _fixed(6)),
    ("Reynolds Number", lambda m: m.reynolds_number, _fixed(0)),
    ("Velocity (m/s)", lambda m: m.wind_speed, _fixed(2)),
    ("Pressure (kPa)", lambda m: m.pressure, _fixed(2)),
    ("Temperature (°C)", lambda m: m.temperature, _fixed(2)),
    ("Drag Force (N)", lambda m: m.drag_force, _fixed(4)),
    ("Lift Force (N)", lambda m: m.lift_force, _fixed(4)),
    ("Mach Number", lambda m: m.mach_number, _fixed(6)),
)

_MEASUREMENT_LIST = TypeAdapter(List[Measurement])


def parse_format(value: str | ExportFormat) -> ExportFormat:
    if isinstance(value, ExportFormat):
        return value
    try:
        return ExportFormat(str(value).strip().lower())
    except ValueError as exc:
        supported = ", ".join(fmt.value for fmt in ExportFormat)
        raise ValidationError(
            f"Unsupported export format {value!r}; expected one of: {supported}."
        ) from exc


class ExportEncoder:
    """Serialises measurement sets for download."""

    def __init__(self, clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)) -> None:
        self._clock = clock

    def encode(
        self,
        measurements: Iterable[Measurement],
        export_format: str | ExportFormat,
        include_headers: bool = True,
    ) -> str:
        fmt = parse_format(export_format)
        items = list(measurements)
        if fmt is ExportFormat.csv:
            return self._encode_csv(items, include_headers)
        return self._encode_json(items)

    def decode_json(self, text: str) -> list[Measurement]:
        """Read back the ``data`` array of a structured-text export."""
        try:
            document = json.loads(text)
        except json.JSONDecodeError as exc:
            raise DecodeError(f"Export is not valid JSON: {exc.msg}") from exc
        if not isinstance(document, dict) or "data" not in document:
            raise DecodeError("Export is missing the 'data' array.")
        try:
            return _MEASUREMENT_LIST.validate_python(document["data"])
        except pydantic.ValidationError as exc:
            raise DecodeError(f"Export data is malformed: {exc.error_count()} error(s).") from exc

    @staticmethod
    def filename(
        base_name: str, export_format: str | ExportFormat, today: Optional[date] = None
    ) -> str:
        fmt = parse_format(export_format)
        day = today or datetime.now(timezone.utc).date()
        return f"{base_name}_{day.isoformat()}.{fmt.value}"

    @staticmethod
    def mime_type(export_format: str | ExportFormat) -> str:
        return _MIME_TYPES[parse_format(export_format)]

    def _encode_csv(self, measurements: list[Measurement], include_headers: bool) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        if include_headers:
            writer.writerow([header for header, _, _ in CSV_COLUMNS])
        for measurement in measurements:
            writer.writerow([fmt(accessor(measurement)) for _, accessor, fmt in CSV_COLUMNS])
        return buffer.getvalue()

    def _encode_json(self, measurements: list[Measurement]) -> str:
        document = {
            "metadata": {
                "exportDate": _iso(self._clock()),
                "dataPoints": len(measurements),
                "format": EXPORT_FORMAT_TAG,
            },
            "data": [m.model_dump(mode="json", by_alias=True) for m in measurements],
        }
        return json.dumps(document, indent=2, ensure_ascii=False)
