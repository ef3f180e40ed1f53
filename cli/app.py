from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import (
    render_config,
    render_measurement,
    render_sessions,
    render_stats,
    render_status,
)
from models.errors import ReconnectExhaustedError
from models.records import Measurement, ModelType
from services.relay_client import RelayClient


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for driving the wind tunnel telemetry service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Service base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    relay_url: Optional[str] = typer.Option(
        None,
        "--relay-url",
        help="Relay WebSocket URL (defaults to RELAY_CLIENT_URL env or ws://localhost:8081).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="HTTP request timeout in seconds.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, relay_url=relay_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("start")
def start_command(
    ctx: typer.Context,
    interval_ms: Optional[int] = typer.Option(None, "--interval-ms", help="Tick interval in ms."),
) -> None:
    """Start generating measurements."""
    state = _get_state(ctx)
    payload = state.client.start_simulation(interval_ms)
    typer.secho("Simulation running.", fg=typer.colors.GREEN)
    render_status(payload)


@app.command("stop")
def stop_command(ctx: typer.Context) -> None:
    """Stop generating measurements."""
    state = _get_state(ctx)
    payload = state.client.stop_simulation()
    typer.secho("Simulation stopped.", fg=typer.colors.YELLOW)
    render_status(payload)


@app.command("status")
def status_command(ctx: typer.Context) -> None:
    """Show simulation state and configuration."""
    state = _get_state(ctx)
    render_status(state.client.simulation_status())


@app.command("config")
def config_command(
    ctx: typer.Context,
    wind_speed: Optional[float] = typer.Option(None, "--wind-speed", help="Target wind speed (m/s)."),
    model_type: Optional[ModelType] = typer.Option(None, "--model-type", case_sensitive=False),
    angle_of_attack: Optional[float] = typer.Option(None, "--angle", help="Angle of attack (deg)."),
    temperature: Optional[float] = typer.Option(None, "--temperature"),
    pressure: Optional[float] = typer.Option(None, "--pressure"),
    humidity: Optional[float] = typer.Option(None, "--humidity"),
    turbulence: Optional[float] = typer.Option(None, "--turbulence", help="Noise intensity 0-1."),
) -> None:
    """Update part of the generator configuration."""
    state = _get_state(ctx)
    candidates: Dict[str, Any] = {
        "windSpeed": wind_speed,
        "modelType": model_type.value if model_type is not None else None,
        "angleOfAttack": angle_of_attack,
        "temperature": temperature,
        "pressure": pressure,
        "humidity": humidity,
        "turbulence": turbulence,
    }
    partial = {key: value for key, value in candidates.items() if value is not None}
    if not partial:
        render_config(state.client.simulation_status().get("config") or {})
        return
    render_config(state.client.update_config(partial))


@app.command("session-start")
def session_start_command(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Display name for the session."),
    notes: Optional[str] = typer.Option(None, "--notes"),
) -> None:
    """Begin recording a session."""
    state = _get_state(ctx)
    session_id = state.client.start_session(name, notes)
    typer.secho(f"Session started. session_id={session_id}", fg=typer.colors.GREEN)


@app.command("session-end")
def session_end_command(ctx: typer.Context) -> None:
    """Seal the active session."""
    state = _get_state(ctx)
    payload = state.client.end_session()
    typer.secho(
        f"Session {payload.get('id')} ended with {payload.get('measurement_count')} measurements.",
        fg=typer.colors.GREEN,
    )


@app.command("sessions")
def sessions_command(ctx: typer.Context) -> None:
    """List recorded sessions."""
    state = _get_state(ctx)
    render_sessions(state.client.list_sessions())


@app.command("stats")
def stats_command(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Session identifier."),
) -> None:
    """Show min/max/avg statistics for a session."""
    state = _get_state(ctx)
    render_stats(state.client.session_stats(session_id))


@app.command("export")
def export_command(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Session identifier."),
    export_format: str = typer.Option("csv", "--format", "-f", help="csv or json."),
    output_dir: Path = typer.Option(
        Path("."), "--output-dir", "-o", file_okay=False, help="Directory for the export file."
    ),
) -> None:
    """Download a session export to disk."""
    state = _get_state(ctx)
    filename, body = state.client.export_session(session_id, export_format)
    output_dir.mkdir(parents=True, exist_ok=True)
    target = output_dir / filename
    target.write_text(body, encoding="utf-8")
    typer.secho(f"Wrote {target}", fg=typer.colors.GREEN)


@app.command("watch")
def watch_command(
    ctx: typer.Context,
    count: int = typer.Option(0, "--count", "-n", help="Stop after N measurements (0 = forever)."),
    reconnect_interval: float = typer.Option(5.0, "--reconnect-interval"),
    max_attempts: int = typer.Option(10, "--max-attempts"),
) -> None:
    """Stream live measurements from the relay."""
    state = _get_state(ctx)
    client = RelayClient(
        state.config.relay_url,
        reconnect_interval=reconnect_interval,
        max_reconnect_attempts=max_attempts,
    )
    typer.echo(f"Watching {state.config.relay_url} ...")
    try:
        asyncio.run(_watch(client, count))
    except ReconnectExhaustedError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc


async def _watch(client: RelayClient, count: int) -> None:
    received = 0
    done = asyncio.Event()

    def on_data(measurement: Measurement) -> None:
        nonlocal received
        render_measurement(measurement)
        received += 1
        if count and received >= count:
            done.set()

    client.on("data", on_data)
    runner = asyncio.create_task(client.run())
    waiter = asyncio.create_task(done.wait())
    finished, _ = await asyncio.wait({runner, waiter}, return_when=asyncio.FIRST_COMPLETED)
    if waiter in finished:
        await client.close()
        await runner
        return
    waiter.cancel()
    runner.result()
