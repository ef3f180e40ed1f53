"""Reconnecting client for a remote relay."""

from __future__ import annotations

import asyncio
import enum
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Optional

from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from app.schemas import (
    CommandMessage,
    ConfigMessage,
    MessageType,
    RelayMessage,
    encode_message,
)
from models.errors import DecodeError, NotConnectedError, ReconnectExhaustedError
from services.relay import decode_message

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]
Connector = Callable[[str], Awaitable[Any]]


class ClientState(str, enum.Enum):
    connecting = "connecting"
    open = "open"
    reconnecting = "reconnecting"
    closed = "closed"


class RelayClient:
    """Keeps a relay connection alive and dispatches envelopes by type.

    After ``max_reconnect_attempts`` consecutive failed connects, :meth:`run`
    raises :class:`ReconnectExhaustedError` instead of retrying forever. A
    successful open resets the attempt counter.
    """

    def __init__(
        self,
        url: str,
        reconnect_interval: float = 5.0,
        max_reconnect_attempts: int = 10,
        connector: Connector = connect,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.url = url
        self.reconnect_interval = reconnect_interval
        self.max_reconnect_attempts = max_reconnect_attempts
        self.state = ClientState.closed
        self.reconnect_attempts = 0
        self._connector = connector
        self._sleep = sleep
        self._connection: Any = None
        self._closing = False
        self._handlers: Dict[MessageType, List[Handler]] = defaultdict(list)

    def on(self, message_type: str | MessageType, handler: Handler) -> None:
        self._handlers[MessageType(message_type)].append(handler)

    def off(self, message_type: str | MessageType, handler: Handler) -> None:
        handlers = self._handlers.get(MessageType(message_type), [])
        if handler in handlers:
            handlers.remove(handler)

    @property
    def connected(self) -> bool:
        return self.state is ClientState.open

    def status(self) -> Dict[str, Any]:
        return {
            "connected": self.connected,
            "connecting": self.state in {ClientState.connecting, ClientState.reconnecting},
            "reconnectAttempts": self.reconnect_attempts,
        }

    async def send(self, message: RelayMessage) -> None:
        if self._connection is None or self.state is not ClientState.open:
            raise NotConnectedError(f"Relay client is not connected to {self.url}.")
        try:
            await self._connection.send(encode_message(message))
        except ConnectionClosed as exc:
            raise NotConnectedError(f"Relay connection to {self.url} closed.") from exc

    async def send_command(self, command: Any) -> None:
        await self.send(CommandMessage(payload=command))

    async def send_config(self, config: Dict[str, Any]) -> None:
        await self.send(ConfigMessage(payload=config))

    async def run(self) -> None:
        """Connect, consume messages and reconnect until closed or exhausted."""
        self._closing = False
        self.state = ClientState.connecting
        while not self._closing:
            try:
                self._connection = await self._connector(self.url)
            except (OSError, WebSocketException, asyncio.TimeoutError) as exc:
                logger.warning(
                    "Relay connection attempt failed",
                    extra={"url": self.url, "reason": str(exc)},
                )
                await self._backoff()
                continue

            self.state = ClientState.open
            self.reconnect_attempts = 0
            logger.info("Relay client connected", extra={"url": self.url})
            try:
                await self._consume()
            finally:
                self._connection = None

            if self._closing:
                break
            logger.info("Relay connection lost", extra={"url": self.url})
            await self._backoff()

        self.state = ClientState.closed

    async def close(self) -> None:
        self._closing = True
        connection = self._connection
        self._connection = None
        if connection is not None:
            await connection.close()
        self.state = ClientState.closed

    async def _consume(self) -> None:
        try:
            async for raw in self._connection:
                self._handle_raw(raw)
        except ConnectionClosed as exc:
            logger.warning("Relay connection closed", extra={"url": self.url, "reason": str(exc)})

    async def _backoff(self) -> None:
        if self._closing:
            return
        if self.reconnect_attempts >= self.max_reconnect_attempts:
            self.state = ClientState.closed
            logger.error(
                "Max reconnection attempts reached",
                extra={"url": self.url, "attempt": self.reconnect_attempts},
            )
            raise ReconnectExhaustedError(
                f"Gave up on {self.url} after {self.reconnect_attempts} reconnect attempts."
            )
        self.reconnect_attempts += 1
        self.state = ClientState.reconnecting
        logger.info(
            "Reconnecting to relay",
            extra={"url": self.url, "attempt": self.reconnect_attempts},
        )
        await self._sleep(self.reconnect_interval)

    def _handle_raw(self, raw: str | bytes) -> None:
        try:
            message = decode_message(raw)
        except DecodeError:
            logger.error("Could not parse relay message", extra={"url": self.url})
            return

        for handler in list(self._handlers.get(MessageType(message.type), [])):
            try:
                handler(message.payload)
            except Exception as exc:  # noqa: BLE001
                logger.exception(
                    "Relay message handler failed",
                    extra={"message_type": message.type, "reason": str(exc)},
                )
