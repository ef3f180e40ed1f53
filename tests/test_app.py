from __future__ import annotations

import csv
import io
import random
from dataclasses import replace
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from services.pipeline import TelemetryServices, build_default_services
from settings import get_settings


@pytest.fixture
def services() -> TelemetryServices:
    settings = replace(get_settings(), update_interval_ms=10)
    return build_default_services(settings=settings, rng=random.Random(42))


@pytest.fixture
def api_client(services: TelemetryServices) -> Iterator[TestClient]:
    app = create_app(services=services, serve_relay=False)
    with TestClient(app) as client:
        yield client


def _measurement_body(make_measurement, index: int = 0, drag: float = 0.3) -> dict:
    measurement = make_measurement(drag=100.0 - index, index=index, drag_coefficient=drag)
    return measurement.model_dump(mode="json", by_alias=True)


def test_healthcheck(api_client: TestClient) -> None:
    response = api_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_lifespan_stops_runner(services: TelemetryServices) -> None:
    app = create_app(services=services, serve_relay=False)

    with TestClient(app) as client:
        assert client.post("/simulation/start").json()["running"] is True

    assert services.runner.running is False
    assert services.relay_server.running is False


def test_simulation_start_stop_and_status(api_client: TestClient) -> None:
    started = api_client.post("/simulation/start", params={"interval_ms": 20})
    assert started.status_code == 200
    assert started.json()["running"] is True
    assert started.json()["interval_ms"] == 20

    stopped = api_client.post("/simulation/stop")
    assert stopped.json()["running"] is False

    status = api_client.get("/simulation/status").json()
    assert status["running"] is False
    assert status["config"]["windSpeed"] == 25.0


def test_simulation_start_rejects_bad_interval(api_client: TestClient) -> None:
    response = api_client.post("/simulation/start", params={"interval_ms": 5})

    assert response.status_code == 400
    assert api_client.get("/simulation/status").json()["running"] is False


def test_config_patch_merges_and_validates(api_client: TestClient) -> None:
    response = api_client.patch("/simulation/config", json={"windSpeed": 35.5, "modelType": "aerofoil"})

    assert response.status_code == 200
    body = response.json()
    assert body["windSpeed"] == 35.5
    assert body["modelType"] == "aerofoil"
    assert body["humidity"] == 50.0

    assert api_client.patch("/simulation/config", json={"flaps": 2}).status_code == 400
    assert api_client.patch("/simulation/config", json={"modelType": "rocket"}).status_code == 400
    assert api_client.get("/simulation/config").json()["windSpeed"] == 35.5


def test_ingest_updates_current_and_history(api_client: TestClient, make_measurement) -> None:
    assert api_client.get("/measurements/current").json() is None

    for index in range(3):
        response = api_client.post("/measurements", json=_measurement_body(make_measurement, index))
        assert response.status_code == 202

    current = api_client.get("/measurements/current").json()
    assert current["windSpeed"] == 27.0
    history = api_client.get("/measurements/history").json()
    assert [item["windSpeed"] for item in history] == [25.0, 26.0, 27.0]

    assert api_client.delete("/measurements/history").status_code == 204
    assert api_client.get("/measurements/history").json() == []
    assert api_client.get("/measurements/current").json()["windSpeed"] == 27.0


def test_ingest_rejects_invalid_measurement(api_client: TestClient) -> None:
    response = api_client.post("/measurements", json={"windSpeed": "fast"})

    assert response.status_code == 422


def test_session_lifecycle(api_client: TestClient, make_measurement) -> None:
    created = api_client.post("/sessions", json={"name": "baseline", "notes": "first run"})
    assert created.status_code == 201
    session_id = created.json()["session_id"]
    assert session_id.startswith("session_")

    conflict = api_client.post("/sessions", json={"name": "second"})
    assert conflict.status_code == 409

    for index, drag in enumerate([0.30, 0.32, 0.34]):
        api_client.post("/measurements", json=_measurement_body(make_measurement, index, drag))

    ended = api_client.post("/sessions/current/end")
    assert ended.status_code == 200
    assert ended.json()["measurement_count"] == 3
    assert ended.json()["active"] is False
    assert api_client.post("/sessions/current/end").status_code == 409

    listing = api_client.get("/sessions").json()
    assert [item["id"] for item in listing] == [session_id]

    detail = api_client.get(f"/sessions/{session_id}").json()
    assert detail["notes"] == "first run"
    assert len(detail["measurements"]) == 3

    stats = api_client.get(f"/sessions/{session_id}/stats").json()
    assert stats["count"] == 3
    assert stats["drag"]["min"] == pytest.approx(0.30)
    assert stats["drag"]["max"] == pytest.approx(0.34)
    assert stats["drag"]["avg"] == pytest.approx(0.32)


def test_session_errors(api_client: TestClient) -> None:
    assert api_client.post("/sessions", json={"name": "  "}).status_code == 400
    assert api_client.get("/sessions/session_missing").status_code == 404
    assert api_client.get("/sessions/session_missing/stats").status_code == 404
    assert api_client.delete("/sessions/session_missing").status_code == 404

    session_id = api_client.post("/sessions", json={"name": "empty"}).json()["session_id"]
    assert api_client.get(f"/sessions/{session_id}/stats").status_code == 404
    assert api_client.delete(f"/sessions/{session_id}").status_code == 204
    assert api_client.get("/sessions").json() == []


def test_export_csv_and_json(api_client: TestClient, make_measurement) -> None:
    session_id = api_client.post("/sessions", json={"name": "export-me"}).json()["session_id"]
    for index in range(2):
        api_client.post("/measurements", json=_measurement_body(make_measurement, index))
    api_client.post("/sessions/current/end")

    csv_response = api_client.get(f"/sessions/{session_id}/export", params={"format": "csv"})
    assert csv_response.status_code == 200
    assert csv_response.headers["content-type"].startswith("text/csv")
    disposition = csv_response.headers["content-disposition"]
    assert disposition.startswith('attachment; filename="export-me_')
    assert disposition.endswith('.csv"')
    rows = list(csv.reader(io.StringIO(csv_response.text)))
    assert rows[0][0] == "Timestamp"
    assert len(rows) == 3

    bare = api_client.get(f"/sessions/{session_id}/export", params={"format": "csv", "headers": "false"})
    assert len(list(csv.reader(io.StringIO(bare.text)))) == 2

    json_response = api_client.get(f"/sessions/{session_id}/export", params={"format": "json"})
    document = json_response.json()
    assert document["metadata"]["dataPoints"] == 2
    assert document["metadata"]["format"] == "wind-tunnel-data"

    unsupported = api_client.get(f"/sessions/{session_id}/export", params={"format": "xml"})
    assert unsupported.status_code == 400


def test_relay_status_when_listener_disabled(api_client: TestClient) -> None:
    body = api_client.get("/relay/status").json()

    assert body == {"running": False, "client_count": 0, "port": None}


def test_websocket_clients_share_the_stream(api_client: TestClient, make_measurement) -> None:
    with api_client.websocket_connect("/ws") as first, api_client.websocket_connect("/ws") as second:
        assert first.receive_json()["payload"]["connected"] is True
        assert second.receive_json()["payload"]["connected"] is True
        assert api_client.get("/relay/status").json()["client_count"] == 2

        first.send_text("{broken")
        error = first.receive_json()
        assert error["type"] == "error"
        assert error["payload"] == {"message": "Invalid message format"}

        for index in range(2):
            api_client.post("/measurements", json=_measurement_body(make_measurement, index))

        for websocket in (first, second):
            speeds = [websocket.receive_json()["payload"]["windSpeed"] for _ in range(2)]
            assert speeds == [25.0, 26.0]


def test_websocket_command_and_config(api_client: TestClient) -> None:
    with api_client.websocket_connect("/ws") as websocket:
        websocket.receive_json()

        websocket.send_json({"type": "config", "payload": {"windSpeed": 12.0}})
        ack = websocket.receive_json()
        assert ack["type"] == "config"
        assert ack["payload"]["configReceived"] is True

        websocket.send_json({"type": "command", "payload": "warp"})
        assert websocket.receive_json()["payload"]["commandReceived"] is True
        error = websocket.receive_json()
        assert error["type"] == "error"
        assert "warp" in error["payload"]["message"]

    assert api_client.get("/simulation/config").json()["windSpeed"] == 12.0
