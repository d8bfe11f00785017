from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status

from bridge.api.deps import get_runtime
from bridge.api.models import FlagsResponse, InfoResponse, library_to_wire
from bridge.errors import PersistenceError
from bridge.startup import BridgeRuntime

logger = logging.getLogger(__name__)

router = APIRouter()

APP_NAME = "game-port-bridge"
APP_VERSION = "0.1.0"


@router.websocket("/ws/ports")
async def ui_ports_ws(websocket: WebSocket, runtime: BridgeRuntime = Depends(get_runtime)) -> None:
    hub = runtime.hub
    await hub.accept(websocket)
    # Startup errors and an already-open session are replayed by the router once the UI joins.
    runtime.router.attach_ui(websocket)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            # Binary frames go through the same envelope decoding as text.
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""
            runtime.router.submit_frame(raw)
    except WebSocketDisconnect:
        await hub.disconnect(websocket)
    except Exception:
        await hub.disconnect(websocket)
        raise


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/flags", response_model=FlagsResponse)
async def flags(runtime: BridgeRuntime = Depends(get_runtime)) -> FlagsResponse:
    """Initial UI flags: the saved-game library as currently stored."""

    try:
        games = runtime.sync.list()
    except PersistenceError as e:
        logger.error("[Error] %s", e.message)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message) from e
    return FlagsResponse(saved_games=library_to_wire(games))


@router.get("/info", response_model=InfoResponse)
async def info(runtime: BridgeRuntime = Depends(get_runtime)) -> InfoResponse:
    return InfoResponse(
        name=APP_NAME,
        version=APP_VERSION,
        endpoint=runtime.endpoint,
        connection=runtime.router.connection_state,
    )
