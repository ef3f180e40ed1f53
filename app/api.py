"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, Response, status

from app.schemas import (
    FieldStats,
    RelayStatus,
    SessionCreated,
    SessionDetail,
    SessionStatsResponse,
    SessionSummary,
    SimulationStatus,
    StartSessionRequest,
)
from datastore.session_store import Session
from models.errors import (
    NoActiveSessionError,
    SessionActiveError,
    SessionNotFoundError,
    ValidationError,
)
from models.records import GeneratorConfig, Measurement
from services.aggregator import FieldSummary
from services.pipeline import TelemetryServices

router = APIRouter()


def get_services(request: Request) -> TelemetryServices:
    return request.app.state.services


def _summary(session: Session) -> SessionSummary:
    return SessionSummary(
        id=session.id,
        name=session.name,
        start_time=session.start_time,
        end_time=session.end_time,
        active=session.active,
        notes=session.notes,
        measurement_count=len(session.measurements),
        config=session.config,
    )


def _detail(session: Session) -> SessionDetail:
    measurements = list(session.measurements)
    return SessionDetail(
        **_summary(session).model_dump(),
        measurements=measurements,
    )


def _field(summary: FieldSummary) -> FieldStats:
    return FieldStats(min=summary.min, max=summary.max, avg=summary.avg)


def _simulation_status(services: TelemetryServices) -> SimulationStatus:
    return SimulationStatus(
        running=services.runner.running,
        interval_ms=services.runner.interval_ms,
        ticks=services.runner.ticks,
        config=services.generator.config,
    )


def _lookup(services: TelemetryServices, session_id: str) -> Session:
    try:
        return services.recorder.get_session(session_id)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.get("/health", summary="Health check endpoint.", status_code=status.HTTP_200_OK)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.post(
    "/simulation/start",
    response_model=SimulationStatus,
    summary="Start periodic measurement generation.",
)
async def start_simulation(
    interval_ms: Optional[int] = Query(default=None, description="Tick interval in milliseconds."),
    services: TelemetryServices = Depends(get_services),
) -> SimulationStatus:
    if interval_ms is not None:
        try:
            services.runner.set_interval(interval_ms)
        except ValidationError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    services.runner.start()
    return _simulation_status(services)


@router.post("/simulation/stop", response_model=SimulationStatus, summary="Stop generation.")
async def stop_simulation(
    services: TelemetryServices = Depends(get_services),
) -> SimulationStatus:
    services.runner.stop()
    return _simulation_status(services)


@router.get("/simulation/status", response_model=SimulationStatus)
async def simulation_status(
    services: TelemetryServices = Depends(get_services),
) -> SimulationStatus:
    return _simulation_status(services)


@router.get("/simulation/config", response_model=GeneratorConfig)
async def get_config(services: TelemetryServices = Depends(get_services)) -> GeneratorConfig:
    return services.generator.config


@router.patch(
    "/simulation/config",
    response_model=GeneratorConfig,
    summary="Merge a partial update into the generator configuration.",
)
async def update_config(
    partial: Dict[str, Any] = Body(...),
    services: TelemetryServices = Depends(get_services),
) -> GeneratorConfig:
    try:
        config = services.update_config(partial)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    await services.hub.send_config(config.model_dump(mode="json", by_alias=True))
    return config


@router.get("/measurements/current", response_model=Optional[Measurement])
async def current_measurement(
    services: TelemetryServices = Depends(get_services),
) -> Optional[Measurement]:
    return services.store.current()


@router.get("/measurements/history", response_model=List[Measurement])
async def measurement_history(
    services: TelemetryServices = Depends(get_services),
) -> List[Measurement]:
    return list(services.store.history())


@router.delete("/measurements/history", status_code=status.HTTP_204_NO_CONTENT)
async def clear_history(services: TelemetryServices = Depends(get_services)) -> Response:
    services.store.clear_history()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/measurements",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Ingest an externally produced measurement.",
)
async def ingest_measurement(
    measurement: Measurement,
    services: TelemetryServices = Depends(get_services),
) -> dict[str, str]:
    await services.pipeline.ingest(measurement)
    return {"status": "accepted"}


@router.get("/relay/status", response_model=RelayStatus)
async def relay_status(services: TelemetryServices = Depends(get_services)) -> RelayStatus:
    return services.relay_server.status()


@router.post(
    "/sessions",
    status_code=status.HTTP_201_CREATED,
    response_model=SessionCreated,
    summary="Start recording a named session.",
)
async def start_session(
    request: StartSessionRequest,
    services: TelemetryServices = Depends(get_services),
) -> SessionCreated:
    try:
        session_id = services.recorder.start_session(
            request.name, services.generator.config, notes=request.notes
        )
    except SessionActiveError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return SessionCreated(session_id=session_id)


@router.post("/sessions/current/end", response_model=SessionSummary)
async def end_session(services: TelemetryServices = Depends(get_services)) -> SessionSummary:
    try:
        session = services.recorder.end_session()
    except NoActiveSessionError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return _summary(session)


@router.get("/sessions", response_model=List[SessionSummary])
async def list_sessions(services: TelemetryServices = Depends(get_services)) -> List[SessionSummary]:
    return [_summary(session) for session in services.recorder.list_sessions()]


@router.get("/sessions/{session_id}", response_model=SessionDetail)
async def get_session(
    session_id: str,
    services: TelemetryServices = Depends(get_services),
) -> SessionDetail:
    return _detail(_lookup(services, session_id))


@router.get("/sessions/{session_id}/stats", response_model=SessionStatsResponse)
async def session_stats(
    session_id: str,
    services: TelemetryServices = Depends(get_services),
) -> SessionStatsResponse:
    _lookup(services, session_id)
    stats = services.recorder.stats(session_id)
    if stats is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session {session_id!r} has no measurements.",
        )
    return SessionStatsResponse(
        session_id=session_id,
        count=stats.count,
        duration_seconds=stats.duration_seconds,
        drag=_field(stats.drag),
        lift=_field(stats.lift),
        velocity=_field(stats.velocity),
        pressure=_field(stats.pressure),
    )


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(
    session_id: str,
    services: TelemetryServices = Depends(get_services),
) -> Response:
    if not services.recorder.delete_session(session_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session {session_id!r} not found.",
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/sessions/{session_id}/export", summary="Download a session as CSV or JSON.")
async def export_session(
    session_id: str,
    export_format: str = Query(default="csv", alias="format"),
    include_headers: bool = Query(default=True, alias="headers"),
    services: TelemetryServices = Depends(get_services),
) -> Response:
    session = _lookup(services, session_id)
    exporter = services.exporter
    try:
        body = exporter.encode(session.measurements, export_format, include_headers=include_headers)
        filename = exporter.filename(session.name, export_format)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return Response(
        content=body,
        media_type=exporter.mime_type(export_format),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
