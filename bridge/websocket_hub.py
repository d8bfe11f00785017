from __future__ import annotations

import asyncio
import logging

from fastapi import WebSocket

from bridge.api.models import PortMessage

logger = logging.getLogger(__name__)


class PortHub:
    """Fan-out of inbound port messages to every attached UI socket.

    Contract:
      - accept the handshake with `accept(websocket)`, then `attach(websocket)`
        from the router loop so the UI joins in event order.
      - deliver port messages with `publish(message)`, or to one UI with `send_to`.

    A UI attached after a message was published does not receive it.
    """

    def __init__(self) -> None:
        self._sockets: set[WebSocket] = set()
        self._lock = asyncio.Lock()

    async def accept(self, websocket: WebSocket) -> None:
        await websocket.accept()

    async def attach(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._sockets.add(websocket)
        logger.info("UI attached (%d connected)", len(self._sockets))

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._sockets.discard(websocket)
        logger.info("UI detached (%d connected)", len(self._sockets))

    async def send_to(self, websocket: WebSocket, message: PortMessage) -> None:
        try:
            await websocket.send_json(message.model_dump(mode="json"))
        except Exception:
            logger.info("UI socket went away before %s was delivered", message.port)
            await self.disconnect(websocket)

    async def publish(self, message: PortMessage) -> None:
        async with self._lock:
            conns = list(self._sockets)

        if not conns:
            logger.debug("No UI attached; %s not delivered", message.port)
            return

        payload = message.model_dump(mode="json")
        dead: list[WebSocket] = []
        for ws in conns:
            try:
                await ws.send_json(payload)
            except Exception:
                dead.append(ws)

        if dead:
            async with self._lock:
                for ws in dead:
                    self._sockets.discard(ws)
            logger.info("Dropped %d dead UI socket(s)", len(dead))
