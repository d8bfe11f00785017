from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class SavedGame(BaseModel):
    """A saved game as the UI defines it.

    Only `gameId` is interpreted (identity key); every other field is kept as-is.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    game_id: str | int = Field(..., alias="gameId")

    def same_game(self, other: SavedGame) -> bool:
        return self.game_id == other.game_id

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


GameLibrary = list[SavedGame]

game_library_adapter: TypeAdapter[list[SavedGame]] = TypeAdapter(list[SavedGame])


def library_to_wire(games: GameLibrary) -> list[dict[str, Any]]:
    return [g.to_wire() for g in games]


class ConnectionState(StrEnum):
    disconnected = "disconnected"
    connecting = "connecting"
    connected = "connected"


class OutboundPort(StrEnum):
    """Channels the UI sends on."""

    send_message = "sendMessage"
    persist_new_game = "persistNewGame"
    delete_persisted_game = "deletePersistedGame"
    request_persisted_games = "requestPersistedGames"
    report_error = "reportError"


class InboundPort(StrEnum):
    """Channels the UI subscribes to."""

    socket_connect = "socketConnect"
    socket_disconnect = "socketDisconnect"
    receive_message = "receiveMessage"
    report_error = "reportError"
    library_loaded = "libraryLoaded"


class PortMessage(BaseModel):
    """Envelope exchanged with the UI over `/ws/ports`."""

    port: str = Field(..., min_length=1)
    data: Any = None


class FlagsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    saved_games: list[dict[str, Any]] = Field(default_factory=list, alias="savedGames")


class InfoResponse(BaseModel):
    name: str
    version: str
    endpoint: str | None = None
    connection: ConnectionState
