from __future__ import annotations

from typing import Any


class BridgeError(Exception):
    """Base class for failures surfaced to the UI on the `reportError` port."""

    def __init__(self, message: str, *, detail: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_details(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message, "detail": self.detail}


class MalformedHostname(BridgeError):
    """Hostname can't be mapped onto an API endpoint."""


class InvalidFrame(BridgeError):
    """A frame (inbound or outbound) is not valid JSON text."""


class PersistenceError(BridgeError):
    """The saved-game store could not be read or written."""


class TransportError(BridgeError):
    """Connection-level failure. Never raised to the UI; folded into socketDisconnect."""
