from __future__ import annotations

import re

from bridge.errors import MalformedHostname

LOCAL_API_PORT = 7000
LOCAL_API_PATH = "/api"

# Both patterns are unanchored searches: `foo.localhost.dev` counts as local and
# `my-game.example.com` resolves to `game-api.example.com`.
_LOCAL_RE = re.compile(r"(localhost|[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3})")
_HOSTED_RE = re.compile(r"(\w+?)\.(.*)")


def resolve(hostname: str) -> str:
    """Map the hostname the UI is served from onto the game server's websocket URI.

    - local (`localhost` or a dotted-quad) -> `ws://{hostname}:7000/api`
    - hosted `{sub}.{rest}` -> `wss://{sub}-api.{rest}/`

    Raises MalformedHostname when a hosted name has no `{sub}.{rest}` split.
    """

    if _LOCAL_RE.search(hostname):
        return f"ws://{hostname}:{LOCAL_API_PORT}{LOCAL_API_PATH}"

    match = _HOSTED_RE.search(hostname)
    if match is None:
        raise MalformedHostname(f"Cannot derive API endpoint from hostname {hostname!r}", detail={"hostname": hostname})
    return f"wss://{match.group(1)}-api.{match.group(2)}/"
