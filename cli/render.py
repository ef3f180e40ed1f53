from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer

from models.records import Measurement


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_status(payload: Dict[str, Any]) -> None:
    echo_heading("Simulation")
    echo_key_values(
        [
            ("running", payload.get("running")),
            ("interval_ms", payload.get("interval_ms")),
            ("ticks", payload.get("ticks")),
        ]
    )
    config = payload.get("config") or {}
    if config:
        typer.echo()
        render_config(config)


def render_config(config: Dict[str, Any]) -> None:
    echo_heading("Configuration")
    echo_key_values(config.items())


def render_sessions(sessions: List[Dict[str, Any]]) -> None:
    echo_heading("Sessions")
    if not sessions:
        typer.echo("No sessions recorded.")
        return
    for session in sessions:
        state = "active" if session.get("active") else "ended"
        typer.echo(
            f"  - {session.get('id')}: {session.get('name')} "
            f"({state}, {session.get('measurement_count')} measurements)"
        )


def render_stats(payload: Dict[str, Any]) -> None:
    echo_heading("Session Statistics")
    echo_key_values(
        [
            ("session_id", payload.get("session_id")),
            ("count", payload.get("count")),
            ("duration_seconds", payload.get("duration_seconds")),
        ]
    )
    for channel in ("drag", "lift", "velocity", "pressure"):
        values = payload.get(channel) or {}
        typer.echo(
            f"{channel}: min={values.get('min')} max={values.get('max')} avg={values.get('avg')}"
        )


def render_measurement(measurement: Measurement) -> None:
    typer.echo(
        f"{measurement.timestamp.isoformat()} wind={measurement.wind_speed:.2f} "
        f"drag={measurement.drag_force:.3f} lift={measurement.lift_force:.3f}"
    )
