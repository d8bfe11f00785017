from __future__ import annotations

import logging

import redis
from pydantic import ValidationError

from bridge.api.models import GameLibrary, game_library_adapter
from bridge.errors import PersistenceError
from bridge.settings import DEFAULT_LIBRARY_KEY

logger = logging.getLogger(__name__)


class PersistenceStore:
    """The saved-game library as one JSON document in Redis.

    The whole list lives under a single key so every write replaces it atomically.
    """

    def __init__(self, *, r: redis.Redis, key: str = DEFAULT_LIBRARY_KEY) -> None:
        self._r = r
        self.key = key

    def get(self) -> GameLibrary | None:
        """Return the stored library, or None if nothing was ever saved."""

        try:
            raw = self._r.get(self.key)
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to read saved games: {e}", detail={"key": self.key}) from e

        if not raw:
            return None
        try:
            return game_library_adapter.validate_json(raw)
        except ValidationError as e:
            raise PersistenceError(
                "Stored saved-game library is corrupt",
                detail={"key": self.key, "errors": e.error_count()},
            ) from e

    def set(self, games: GameLibrary) -> None:
        payload = game_library_adapter.dump_json(games, by_alias=True).decode("utf-8")
        try:
            self._r.set(self.key, payload)
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to write saved games: {e}", detail={"key": self.key}) from e
        logger.debug("Stored %d saved game(s) under %s", len(games), self.key)

    def remove(self) -> None:
        try:
            self._r.delete(self.key)
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to clear saved games: {e}", detail={"key": self.key}) from e
