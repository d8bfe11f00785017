from __future__ import annotations

import json
from typing import Any

from bridge.errors import InvalidFrame


def encode_frame(payload: Any) -> str:
    try:
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise InvalidFrame(f"Outbound payload is not JSON-serializable: {e}", detail={"direction": "outbound"}) from e


def decode_frame(raw: str | bytes) -> Any:
    """Parse one inbound frame.

    Binary frames are accepted when they carry UTF-8 JSON text.
    """

    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = bytes(raw).decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidFrame("Inbound binary frame is not UTF-8 text", detail={"direction": "inbound"}) from e

    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        # Keep a short excerpt for diagnostics; frames can be large.
        excerpt = raw if len(raw) <= 200 else raw[:200] + "..."
        raise InvalidFrame(
            f"Inbound frame is not valid JSON: {e.msg}",
            detail={"direction": "inbound", "frame": excerpt},
        ) from e
