"""Publish/subscribe relay for measurements and control messages.

:class:`RelayHub` knows nothing about sockets: any transport that can send
text and yield inbound text can be attached through :meth:`RelayHub.serve`.
:class:`RelayServer` binds the hub to a standalone ``websockets`` listener;
the FastAPI application exposes the same hub on its ``/ws`` route.
"""

from __future__ import annotations

import asyncio
import enum
import itertools
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, AsyncIterable, Awaitable, Callable, Dict, Optional, Protocol

import pydantic
from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.exceptions import ConnectionClosed

from app.schemas import (
    SCHEMA_VERSION,
    CommandMessage,
    ConfigMessage,
    DataMessage,
    ErrorMessage,
    ErrorPayload,
    RelayMessage,
    RelayStatus,
    StatusMessage,
    encode_message,
    relay_message_adapter,
)
from models.errors import DecodeError, TransportError, ValidationError
from models.records import Measurement

logger = logging.getLogger(__name__)

Hook = Callable[[Any], Awaitable[None]]
# A command hook may answer the requesting client with a status payload.
CommandHook = Callable[[Any], Awaitable[Optional[Dict[str, Any]]]]


class RelayConnection(Protocol):
    async def send_text(self, data: str) -> None: ...

    async def close(self) -> None: ...


class ConnectionState(str, enum.Enum):
    connecting = "connecting"
    open = "open"
    closed = "closed"


@dataclass
class _Client:
    id: str
    connection: RelayConnection
    state: ConnectionState = ConnectionState.connecting


def decode_message(raw: str | bytes) -> RelayMessage:
    try:
        return relay_message_adapter.validate_json(raw)
    except pydantic.ValidationError as exc:
        raise DecodeError("Invalid message format") from exc


class RelayHub:
    """Tracks open connections and fans messages out to them."""

    def __init__(
        self,
        on_command: Optional[CommandHook] = None,
        on_config: Optional[Hook] = None,
        on_data: Optional[Hook] = None,
    ) -> None:
        self.on_command = on_command
        self.on_config = on_config
        self.on_data = on_data
        self._clients: Dict[str, _Client] = {}
        self._ids = itertools.count(1)
        self._send_lock = asyncio.Lock()

    @property
    def client_count(self) -> int:
        return sum(1 for client in self._clients.values() if client.state is ConnectionState.open)

    async def serve(self, connection: RelayConnection, inbound: AsyncIterable[str | bytes]) -> None:
        """Run one connection until its inbound stream ends or fails."""
        client_id = await self.register(connection)
        try:
            async for raw in inbound:
                await self.handle_text(client_id, raw)
        except TransportError as exc:
            logger.warning(
                "Relay connection failed",
                extra={"connection_id": client_id, "reason": str(exc)},
            )
        finally:
            self.unregister(client_id)

    async def register(self, connection: RelayConnection) -> str:
        client = _Client(id=f"conn-{next(self._ids)}", connection=connection)
        self._clients[client.id] = client
        # Broadcasts skip the client until its greeting has gone out.
        await self._send(
            client,
            StatusMessage(
                payload={
                    "connected": True,
                    "timestamp": datetime.now(timezone.utc),
                    "schemaVersion": SCHEMA_VERSION,
                }
            ),
        )
        if client.id in self._clients:
            client.state = ConnectionState.open
            logger.info(
                "Relay client connected",
                extra={"connection_id": client.id, "client_count": self.client_count},
            )
        return client.id

    def unregister(self, client_id: str) -> None:
        client = self._clients.pop(client_id, None)
        if client is None:
            return
        client.state = ConnectionState.closed
        logger.info(
            "Relay client disconnected",
            extra={"connection_id": client_id, "client_count": self.client_count},
        )

    async def handle_text(self, client_id: str, raw: str | bytes) -> None:
        client = self._clients.get(client_id)
        if client is None or client.state is not ConnectionState.open:
            return

        try:
            message = decode_message(raw)
        except DecodeError as exc:
            logger.warning(
                "Rejected malformed relay message",
                extra={"connection_id": client_id, "reason": str(exc)},
            )
            await self._send(client, ErrorMessage(payload=ErrorPayload(message=str(exc))))
            return

        logger.debug(
            "Relay message received",
            extra={"connection_id": client_id, "message_type": message.type},
        )
        try:
            await self._dispatch(client, message)
        except ValidationError as exc:
            await self._send(client, ErrorMessage(payload=ErrorPayload(message=str(exc))))

    async def publish(self, measurement: Measurement) -> None:
        await self.broadcast(DataMessage(payload=measurement))

    async def send_status(self, status: Dict[str, Any]) -> None:
        await self.broadcast(StatusMessage(payload=status))

    async def send_config(self, config: Dict[str, Any]) -> None:
        await self.broadcast(ConfigMessage(payload=config))

    async def send_error(self, message: str) -> None:
        await self.broadcast(ErrorMessage(payload=ErrorPayload(message=message)))

    async def broadcast(self, message: RelayMessage) -> None:
        if not self._clients:
            return
        text = encode_message(message)
        async with self._send_lock:
            for client in list(self._clients.values()):
                if client.state is not ConnectionState.open:
                    continue
                await self._deliver(client, text)

    async def close_all(self) -> None:
        for client in list(self._clients.values()):
            client.state = ConnectionState.closed
            try:
                await client.connection.close()
            except TransportError as exc:
                logger.warning(
                    "Relay client did not close cleanly",
                    extra={"connection_id": client.id, "reason": str(exc)},
                )
        self._clients.clear()

    async def _dispatch(self, client: _Client, message: RelayMessage) -> None:
        if isinstance(message, CommandMessage):
            await self._send(
                client,
                StatusMessage(payload={"commandReceived": True, "command": message.payload}),
            )
            if self.on_command is not None:
                reply = await self.on_command(message.payload)
                if reply is not None:
                    await self._send(client, StatusMessage(payload=reply))
        elif isinstance(message, ConfigMessage):
            await self._send(
                client,
                ConfigMessage(payload={"configReceived": True, "config": message.payload}),
            )
            if self.on_config is not None:
                await self.on_config(message.payload)
        elif isinstance(message, DataMessage):
            if self.on_data is not None:
                await self.on_data(message.payload)
        else:
            logger.info(
                "Ignoring inbound relay message",
                extra={"connection_id": client.id, "message_type": message.type},
            )

    async def _send(self, client: _Client, message: RelayMessage) -> None:
        text = encode_message(message)
        async with self._send_lock:
            await self._deliver(client, text)

    async def _deliver(self, client: _Client, text: str) -> None:
        try:
            await client.connection.send_text(text)
        except TransportError as exc:
            logger.warning(
                "Dropping relay client after send failure",
                extra={"connection_id": client.id, "reason": str(exc)},
            )
            self.unregister(client.id)


class _WebsocketsConnection:
    def __init__(self, connection: ServerConnection) -> None:
        self._connection = connection

    async def send_text(self, data: str) -> None:
        try:
            await self._connection.send(data)
        except ConnectionClosed as exc:
            raise TransportError(str(exc)) from exc

    async def close(self) -> None:
        await self._connection.close()

    async def messages(self) -> AsyncIterable[str | bytes]:
        try:
            async for message in self._connection:
                yield message
        except ConnectionClosed as exc:
            raise TransportError(str(exc)) from exc


class RelayServer:
    """Standalone WebSocket listener bound to a fixed local port."""

    def __init__(self, hub: RelayHub, host: str = "127.0.0.1", port: int = 8081) -> None:
        self.hub = hub
        self.host = host
        self.requested_port = port
        self._server: Optional[Server] = None

    @property
    def running(self) -> bool:
        return self._server is not None

    @property
    def port(self) -> Optional[int]:
        if self._server is None:
            return None
        for sock in self._server.sockets:
            return sock.getsockname()[1]
        return self.requested_port

    async def start(self) -> None:
        if self._server is not None:
            return
        try:
            self._server = await serve(self._handle, self.host, self.requested_port)
        except OSError as exc:
            logger.error(
                "Relay server failed to bind",
                extra={"port": self.requested_port, "reason": str(exc)},
            )
            raise TransportError(
                f"Could not bind relay on {self.host}:{self.requested_port}: {exc}"
            ) from exc
        logger.info("Relay server listening", extra={"port": self.port})

    async def stop(self) -> None:
        server = self._server
        if server is None:
            return
        self._server = None
        server.close()
        await server.wait_closed()
        await self.hub.close_all()
        logger.info("Relay server stopped", extra={"port": self.requested_port})

    def status(self) -> RelayStatus:
        return RelayStatus(running=self.running, client_count=self.hub.client_count, port=self.port)

    async def _handle(self, connection: ServerConnection) -> None:
        adapter = _WebsocketsConnection(connection)
        await self.hub.serve(adapter, adapter.messages())
