from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal

# Transport lifecycle and frames, then UI intents. Everything the router handles
# arrives as one of these on a single queue.
EventType = Literal[
    "OPEN",
    "CLOSE",
    "ERROR",
    "FRAME",
    "UI_ATTACHED",
    "UI_FRAME",
    "UI_PORT",
]


@dataclass(frozen=True, slots=True)
class BridgeEvent:
    type: EventType
    payload: Any
    ts: datetime
    # UI_PORT only: the outbound port the UI used. UI_FRAME carries the raw envelope text,
    # UI_ATTACHED the UI socket itself.
    port: str | None = None

    @staticmethod
    def now(*, type: EventType, payload: Any = None, port: str | None = None) -> "BridgeEvent":
        return BridgeEvent(type=type, payload=payload, ts=datetime.now(timezone.utc), port=port)
