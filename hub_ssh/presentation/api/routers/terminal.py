"""
WebSocket terminal relay endpoint.

Each accepted WebSocket gets its own relay instance. Text and binary frames
are handed to the relay unchanged; when the socket goes away the relay is
torn down without sending anything further.
"""

import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, Union

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from loguru import logger

from ....application.relays import RelayFactory
from ....core.interfaces.channel import IClientChannel
from ..dependencies import get_relay_factory

router = APIRouter()


class WebSocketChannel(IClientChannel):
    """Client channel over a Starlette WebSocket with serialized writes."""

    def __init__(self, websocket: WebSocket) -> None:
        self._websocket = websocket
        self._send_lock = asyncio.Lock()
        self._open = True

    @property
    def is_open(self) -> bool:
        return self._open

    async def send_json(self, message: Dict[str, Any]) -> None:
        await self._send(self._websocket.send_text, json.dumps(message))

    async def send_bytes(self, data: bytes) -> None:
        await self._send(self._websocket.send_bytes, data)

    async def _send(self, sender: Callable[[Any], Awaitable[None]], payload: Any) -> None:
        async with self._send_lock:
            if not self._open:
                return
            try:
                await sender(payload)
            except (WebSocketDisconnect, RuntimeError, OSError) as e:
                self._open = False
                logger.debug(f"WebSocket send failed, channel closed: {e}")

    async def close(self, code: int = 1000) -> None:
        async with self._send_lock:
            if not self._open:
                return
            self._open = False
            try:
                await self._websocket.close(code=code)
            except (RuntimeError, OSError) as e:
                logger.debug(f"WebSocket already closed: {e}")

    def mark_closed(self) -> None:
        """Record that the client side has gone away."""
        self._open = False


def _frame_of(message: Dict[str, Any]) -> Union[str, bytes, None]:
    if message.get("bytes") is not None:
        return message["bytes"]  # type: ignore[no-any-return]
    if message.get("text") is not None:
        return message["text"]  # type: ignore[no-any-return]
    return None


async def relay_endpoint(
    websocket: WebSocket,
    factory: RelayFactory = Depends(get_relay_factory)
) -> None:
    """Serve one browser terminal connection."""
    await websocket.accept()

    channel = WebSocketChannel(websocket)
    relay = factory.create(channel)
    client = f"{websocket.client.host}:{websocket.client.port}" if websocket.client else "unknown"
    logger.info(f"Relay {relay.relay_id}: client {client} connected")

    try:
        while channel.is_open:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break

            frame = _frame_of(message)
            if frame is not None:
                await relay.handle_frame(frame)
    except WebSocketDisconnect:
        pass
    finally:
        channel.mark_closed()
        await relay.close()
        logger.info(f"Relay {relay.relay_id}: client {client} disconnected")


router.add_api_websocket_route("/", relay_endpoint)
router.add_api_websocket_route("/ws", relay_endpoint)
