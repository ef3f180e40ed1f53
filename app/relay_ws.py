"""WebSocket route exposing the relay hub inside the HTTP application."""

from __future__ import annotations

from typing import AsyncIterator

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from models.errors import TransportError
from services.relay import RelayHub

router = APIRouter()


class _StarletteConnection:
    def __init__(self, websocket: WebSocket) -> None:
        self._websocket = websocket

    async def send_text(self, data: str) -> None:
        try:
            await self._websocket.send_text(data)
        except (WebSocketDisconnect, RuntimeError) as exc:
            raise TransportError(str(exc) or "websocket closed") from exc

    async def close(self) -> None:
        try:
            await self._websocket.close()
        except RuntimeError as exc:
            raise TransportError(str(exc)) from exc

    async def messages(self) -> AsyncIterator[str | bytes]:
        while True:
            message = await self._websocket.receive()
            if message["type"] == "websocket.disconnect":
                return
            text = message.get("text")
            yield text if text is not None else message.get("bytes") or b""


@router.websocket("/ws")
async def relay_endpoint(websocket: WebSocket) -> None:
    hub: RelayHub = websocket.app.state.services.hub
    await websocket.accept()
    connection = _StarletteConnection(websocket)
    await hub.serve(connection, connection.messages())
