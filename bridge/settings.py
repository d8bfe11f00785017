from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from bridge.infra.redis_client import get_redis_url
from bridge.transport import ReconnectPolicy

DEFAULT_LIBRARY_KEY = "bridge:saved_games"


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e


def _env_optional_int(name: str) -> int | None:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        value = int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e
    if value < 0:
        raise ValueError(f"{name} must be >= 0")
    return value


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in {"1", "true", "yes", "on"}


def load_dotenv_if_present(*, project_root: Path | None = None) -> None:
    """Load a repo-local `.env` for dev runs. Already-exported variables win."""

    root = project_root or Path(__file__).resolve().parents[1]
    env_path = root / ".env"
    if env_path.exists():
        from dotenv import load_dotenv

        load_dotenv(dotenv_path=env_path, override=False)


@dataclass(frozen=True, slots=True)
class BridgeSettings:
    # Hostname the UI is served from; drives endpoint selection.
    hostname: str = "localhost"
    redis_url: str = "redis://localhost:6379/0"
    library_key: str = DEFAULT_LIBRARY_KEY
    reconnect: ReconnectPolicy = field(default_factory=ReconnectPolicy)
    # Deliver library reloads on socketConnect instead of libraryLoaded.
    legacy_library_on_connect: bool = False
    log_level: str = "DEBUG"

    @classmethod
    def from_env(cls) -> BridgeSettings:
        defaults = ReconnectPolicy()
        policy = ReconnectPolicy(
            initial_delay=_env_float("BRIDGE_RECONNECT_INITIAL_DELAY", defaults.initial_delay),
            max_delay=_env_float("BRIDGE_RECONNECT_MAX_DELAY", defaults.max_delay),
            backoff_factor=_env_float("BRIDGE_RECONNECT_BACKOFF_FACTOR", defaults.backoff_factor),
            jitter=_env_float("BRIDGE_RECONNECT_JITTER", defaults.jitter),
            connect_timeout=_env_float("BRIDGE_CONNECT_TIMEOUT", defaults.connect_timeout),
            max_queued_messages=_env_optional_int("BRIDGE_MAX_QUEUED_MESSAGES"),
        )
        return cls(
            hostname=os.environ.get("BRIDGE_HOSTNAME", "localhost"),
            redis_url=get_redis_url(),
            library_key=os.environ.get("BRIDGE_LIBRARY_KEY", DEFAULT_LIBRARY_KEY),
            reconnect=policy,
            legacy_library_on_connect=_env_flag("BRIDGE_LEGACY_LIBRARY_ON_CONNECT"),
            log_level=os.environ.get("BRIDGE_LOG_LEVEL", "DEBUG").upper(),
        )
