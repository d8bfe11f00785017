from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from pydantic import ValidationError

from bridge.api.models import (
    ConnectionState,
    GameLibrary,
    InboundPort,
    OutboundPort,
    PortMessage,
    SavedGame,
    library_to_wire,
)
from bridge.core.events import BridgeEvent
from bridge.errors import BridgeError, InvalidFrame, PersistenceError, TransportError
from bridge.frames import decode_frame
from bridge.library_sync import LibrarySync
from bridge.transport import TransportSession

logger = logging.getLogger(__name__)


class PortSink(Protocol):
    async def attach(self, target: Any) -> None: ...

    async def send_to(self, target: Any, message: PortMessage) -> None: ...

    async def publish(self, message: PortMessage) -> None: ...


class MessageRouter:
    """Single consumer of the bridge event queue.

    Transport lifecycle/frames and UI port intents are handled strictly in the
    order they were queued; one handler finishes before the next starts.
    A failing event is reported on `reportError` and the loop moves on.
    """

    def __init__(
        self,
        *,
        events: asyncio.Queue[BridgeEvent],
        ports: PortSink,
        sync: LibrarySync,
        transport: TransportSession | None,
        legacy_library_on_connect: bool = False,
        startup_error: BridgeError | None = None,
    ) -> None:
        self.events = events
        self._ports = ports
        self._sync = sync
        self._transport = transport
        self._legacy_library_on_connect = legacy_library_on_connect
        self._startup_error = startup_error
        # What attached UIs have been told so far; late UIs get the same view.
        self._announced_open = False

    @property
    def connection_state(self) -> ConnectionState:
        if self._transport is None:
            return ConnectionState.disconnected
        return self._transport.state

    # UI intake -------------------------------------------------------------

    def attach_ui(self, target: Any) -> None:
        """Queue a newly accepted UI socket; it joins the fan-out in event order."""

        self.events.put_nowait(BridgeEvent.now(type="UI_ATTACHED", payload=target))

    def submit(self, port: str, data: Any = None) -> None:
        self.events.put_nowait(BridgeEvent.now(type="UI_PORT", payload=data, port=port))

    def submit_frame(self, raw: str | bytes) -> None:
        """Queue a raw `{"port": ..., "data": ...}` envelope received from the UI."""

        self.events.put_nowait(BridgeEvent.now(type="UI_FRAME", payload=raw))

    def send_message(self, message: Any) -> None:
        self.submit(OutboundPort.send_message, message)

    def persist_new_game(self, game: Any) -> None:
        self.submit(OutboundPort.persist_new_game, game)

    def delete_persisted_game(self, game: Any) -> None:
        self.submit(OutboundPort.delete_persisted_game, game)

    def request_persisted_games(self) -> None:
        self.submit(OutboundPort.request_persisted_games)

    # Loop ------------------------------------------------------------------

    async def run(self) -> None:
        while True:
            event = await self.events.get()
            try:
                await self.dispatch(event)
            finally:
                self.events.task_done()

    async def drain(self) -> int:
        """Handle everything currently queued without waiting for more. Returns the count."""

        handled = 0
        while not self.events.empty():
            event = self.events.get_nowait()
            try:
                await self.dispatch(event)
            finally:
                self.events.task_done()
            handled += 1
        return handled

    async def dispatch(self, event: BridgeEvent) -> None:
        try:
            await self._handle(event)
        except BridgeError as e:
            await self.report(e)
        except Exception as e:
            logger.exception("Unhandled error while routing %s", event.type)
            await self._publish(
                InboundPort.report_error,
                {"kind": "InternalError", "message": str(e) or type(e).__name__, "detail": {"event": event.type}},
            )

    async def report(self, error: BridgeError) -> None:
        logger.error("[Error] %s: %s", error.kind, error.message)
        await self._publish(InboundPort.report_error, error.to_details())

    async def _handle(self, event: BridgeEvent) -> None:
        if event.type == "OPEN":
            self._announced_open = True
            await self._publish(InboundPort.socket_connect, None)
        elif event.type in ("CLOSE", "ERROR"):
            self._announced_open = False
            await self._publish(InboundPort.socket_disconnect, None)
        elif event.type == "UI_ATTACHED":
            await self._attach(event.payload)
        elif event.type == "FRAME":
            message = decode_frame(event.payload)
            logger.debug("<< Message from server %s", message)
            await self._publish(InboundPort.receive_message, message)
        elif event.type == "UI_FRAME":
            envelope = self._parse_envelope(event.payload)
            await self._handle_port(envelope.port, envelope.data)
        elif event.type == "UI_PORT":
            await self._handle_port(event.port or "", event.payload)
        else:
            raise ValueError(f"Unknown event type: {event.type}")

    async def _attach(self, target: Any) -> None:
        await self._ports.attach(target)
        if self._startup_error is not None:
            await self._ports.send_to(
                target, PortMessage(port=InboundPort.report_error.value, data=self._startup_error.to_details())
            )
        if self._announced_open:
            await self._ports.send_to(target, PortMessage(port=InboundPort.socket_connect.value, data=None))

    @staticmethod
    def _parse_envelope(raw: str | bytes) -> PortMessage:
        data = decode_frame(raw)
        try:
            return PortMessage.model_validate(data)
        except ValidationError as e:
            raise InvalidFrame("UI message is not a port envelope", detail={"errors": e.error_count()}) from e

    async def _handle_port(self, port: str, data: Any) -> None:
        try:
            outbound = OutboundPort(port)
        except ValueError:
            raise InvalidFrame(f"Unknown port: {port!r}", detail={"port": port}) from None

        if outbound is OutboundPort.send_message:
            await self._send_message(data)
        elif outbound is OutboundPort.persist_new_game:
            game = self._saved_game(data)
            logger.debug(">> Updating library %s", game.game_id)
            self._sync.save(game)
        elif outbound is OutboundPort.delete_persisted_game:
            game = self._saved_game(data)
            logger.debug(">> Deleting saved game %s", game.game_id)
            self._sync.remove(game)
        elif outbound is OutboundPort.request_persisted_games:
            logger.debug(">> Reloading saved games")
            await self._reload_library()
        elif outbound is OutboundPort.report_error:
            logger.error("[Error] reported by UI: %s", data)

    async def _send_message(self, data: Any) -> None:
        if self._transport is None:
            raise TransportError("No game server endpoint; message not sent")
        logger.debug(">> Sending message %s", data)
        if not await self._transport.send(data):
            raise TransportError("Outbound queue full; message dropped", detail={"queued": len(self._transport.queued)})

    async def _reload_library(self) -> None:
        games: GameLibrary
        try:
            games = self._sync.list()
        except PersistenceError as e:
            await self.report(e)
            games = self._sync.last_known_good

        port = InboundPort.socket_connect if self._legacy_library_on_connect else InboundPort.library_loaded
        await self._publish(port, library_to_wire(games))

    @staticmethod
    def _saved_game(data: Any) -> SavedGame:
        try:
            return SavedGame.model_validate(data)
        except ValidationError as e:
            raise InvalidFrame("Saved game has no usable gameId", detail={"errors": e.error_count()}) from e

    async def _publish(self, port: InboundPort, data: Any) -> None:
        await self._ports.publish(PortMessage(port=port.value, data=data))
