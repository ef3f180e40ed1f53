"""Tests for the relay hub and its standalone websockets listener."""

from __future__ import annotations

import asyncio
import json
from typing import Any, List

import pytest
from websockets.asyncio.client import connect

from models.errors import TransportError, ValidationError
from services.relay import RelayHub, RelayServer


class FakeConnection:
    def __init__(self, fail_after: int | None = None) -> None:
        self.sent: List[dict[str, Any]] = []
        self.closed = False
        self._fail_after = fail_after

    async def send_text(self, data: str) -> None:
        if self._fail_after is not None and len(self.sent) >= self._fail_after:
            raise TransportError("peer went away")
        self.sent.append(json.loads(data))

    async def close(self) -> None:
        self.closed = True

    def of_type(self, message_type: str) -> List[dict[str, Any]]:
        return [message for message in self.sent if message["type"] == message_type]


def test_register_sends_connection_status() -> None:
    async def scenario() -> FakeConnection:
        hub = RelayHub()
        connection = FakeConnection()
        await hub.register(connection)
        assert hub.client_count == 1
        return connection

    connection = asyncio.run(scenario())

    (status,) = connection.sent
    assert status["type"] == "status"
    assert status["payload"]["connected"] is True
    assert status["payload"]["schemaVersion"] == 2


class SlowConnection(FakeConnection):
    async def send_text(self, data: str) -> None:
        await asyncio.sleep(0.02)
        await super().send_text(data)


def test_greeting_precedes_broadcasts_queued_during_register(make_measurement) -> None:
    async def scenario() -> FakeConnection:
        hub = RelayHub()
        await hub.register(SlowConnection())
        first = asyncio.create_task(hub.publish(make_measurement(index=0)))
        await asyncio.sleep(0)
        second = asyncio.create_task(hub.publish(make_measurement(index=1)))
        await asyncio.sleep(0)
        newcomer = FakeConnection()
        await hub.register(newcomer)
        await asyncio.gather(first, second)
        return newcomer

    newcomer = asyncio.run(scenario())

    assert newcomer.sent[0]["type"] == "status"
    assert newcomer.sent[0]["payload"]["connected"] is True
    assert newcomer.of_type("data") == []


def test_clients_receive_identical_data_in_order(make_measurement) -> None:
    measurements = [make_measurement(drag=0.3 + i / 100, index=i) for i in range(5)]

    async def scenario() -> tuple[FakeConnection, FakeConnection]:
        hub = RelayHub()
        first, second = FakeConnection(), FakeConnection()
        await hub.register(first)
        await hub.register(second)
        for measurement in measurements:
            await hub.publish(measurement)
        return first, second

    first, second = asyncio.run(scenario())

    first_data = first.of_type("data")
    assert first_data == second.of_type("data")
    assert [message["payload"]["windSpeed"] for message in first_data] == [
        m.wind_speed for m in measurements
    ]


def test_malformed_message_only_answers_the_sender(make_measurement) -> None:
    async def scenario() -> tuple[RelayHub, FakeConnection, FakeConnection]:
        hub = RelayHub()
        sender, bystander = FakeConnection(), FakeConnection()
        sender_id = await hub.register(sender)
        await hub.register(bystander)
        await hub.handle_text(sender_id, "{not json")
        await hub.handle_text(sender_id, json.dumps({"type": "bogus", "payload": {}}))
        await hub.publish(make_measurement())
        return hub, sender, bystander

    hub, sender, bystander = asyncio.run(scenario())

    errors = sender.of_type("error")
    assert len(errors) == 2
    assert errors[0]["payload"]["message"] == "Invalid message format"
    assert bystander.of_type("error") == []
    assert hub.client_count == 2
    assert len(sender.of_type("data")) == 1


def test_command_is_acknowledged_then_dispatched() -> None:
    received: List[Any] = []

    async def on_command(command: Any) -> None:
        received.append(command)

    async def scenario() -> FakeConnection:
        hub = RelayHub(on_command=on_command)
        connection = FakeConnection()
        client_id = await hub.register(connection)
        await hub.handle_text(client_id, json.dumps({"type": "command", "payload": "start"}))
        return connection

    connection = asyncio.run(scenario())

    ack = connection.of_type("status")[-1]
    assert ack["payload"] == {"commandReceived": True, "command": "start"}
    assert received == ["start"]


def test_command_reply_only_reaches_the_requester() -> None:
    async def on_command(command: Any) -> dict:
        return {"running": False, "ticks": 0}

    async def scenario() -> tuple[FakeConnection, FakeConnection]:
        hub = RelayHub(on_command=on_command)
        requester, bystander = FakeConnection(), FakeConnection()
        requester_id = await hub.register(requester)
        await hub.register(bystander)
        await hub.handle_text(requester_id, json.dumps({"type": "command", "payload": "status"}))
        return requester, bystander

    requester, bystander = asyncio.run(scenario())

    assert requester.of_type("status")[-1]["payload"] == {"running": False, "ticks": 0}
    assert len(bystander.of_type("status")) == 1


def test_config_is_acknowledged_and_hook_errors_reported() -> None:
    async def on_config(payload: Any) -> None:
        raise ValidationError("Unknown configuration field 'flaps'.")

    async def scenario() -> FakeConnection:
        hub = RelayHub(on_config=on_config)
        connection = FakeConnection()
        client_id = await hub.register(connection)
        await hub.handle_text(client_id, json.dumps({"type": "config", "payload": {"flaps": 3}}))
        return connection

    connection = asyncio.run(scenario())

    (ack,) = connection.of_type("config")
    assert ack["payload"] == {"configReceived": True, "config": {"flaps": 3}}
    (error,) = connection.of_type("error")
    assert "flaps" in error["payload"]["message"]


def test_inbound_data_is_forwarded(make_measurement) -> None:
    received: List[Any] = []

    async def on_data(measurement: Any) -> None:
        received.append(measurement)

    measurement = make_measurement(index=3)
    raw = json.dumps({"type": "data", "payload": measurement.model_dump(mode="json", by_alias=True)})

    async def scenario() -> None:
        hub = RelayHub(on_data=on_data)
        client_id = await hub.register(FakeConnection())
        await hub.handle_text(client_id, raw)

    asyncio.run(scenario())

    assert received == [measurement]


def test_failed_send_drops_only_that_client(make_measurement) -> None:
    async def scenario() -> tuple[RelayHub, FakeConnection]:
        hub = RelayHub()
        healthy, broken = FakeConnection(), FakeConnection(fail_after=1)
        await hub.register(healthy)
        await hub.register(broken)
        await hub.publish(make_measurement(index=0))
        await hub.publish(make_measurement(index=1))
        return hub, healthy

    hub, healthy = asyncio.run(scenario())

    assert hub.client_count == 1
    assert len(healthy.of_type("data")) == 2


def test_serve_unregisters_when_inbound_ends() -> None:
    async def inbound():
        yield json.dumps({"type": "command", "payload": {"action": "status"}})

    async def scenario() -> tuple[RelayHub, FakeConnection]:
        hub = RelayHub()
        connection = FakeConnection()
        await hub.serve(connection, inbound())
        return hub, connection

    hub, connection = asyncio.run(scenario())

    assert hub.client_count == 0
    assert connection.of_type("status")[-1]["payload"]["commandReceived"] is True


def test_server_round_trip_and_idempotent_stop(make_measurement) -> None:
    measurement = make_measurement(index=7)

    async def scenario() -> tuple[dict, dict, RelayServer]:
        hub = RelayHub()
        server = RelayServer(hub, host="127.0.0.1", port=0)
        await server.start()
        await server.start()
        assert server.running
        async with connect(f"ws://127.0.0.1:{server.port}") as websocket:
            greeting = json.loads(await websocket.recv())
            assert server.status().client_count == 1
            await hub.publish(measurement)
            data = json.loads(await websocket.recv())
        await server.stop()
        await server.stop()
        return greeting, data, server

    greeting, data, server = asyncio.run(scenario())

    assert greeting["type"] == "status"
    assert data["type"] == "data"
    assert data["payload"]["windSpeed"] == measurement.wind_speed
    assert server.running is False
    assert server.status().port is None


def test_bind_failure_is_a_transport_error() -> None:
    async def scenario() -> None:
        holder = RelayServer(RelayHub(), host="127.0.0.1", port=0)
        await holder.start()
        try:
            contender = RelayServer(RelayHub(), host="127.0.0.1", port=holder.port)
            with pytest.raises(TransportError):
                await contender.start()
            assert contender.running is False
        finally:
            await holder.stop()

    asyncio.run(scenario())


def test_error_and_status_broadcasts_reach_every_client() -> None:
    async def scenario() -> list[FakeConnection]:
        hub = RelayHub()
        connections = [FakeConnection(), FakeConnection()]
        for connection in connections:
            await hub.register(connection)
        await hub.send_error("sensor offline")
        await hub.send_status({"running": False})
        return connections

    for connection in asyncio.run(scenario()):
        assert connection.of_type("error")[0]["payload"] == {"message": "sensor offline"}
        assert connection.of_type("status")[-1]["payload"] == {"running": False}
