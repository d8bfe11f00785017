from __future__ import annotations

import logging

from bridge.api.models import GameLibrary, SavedGame
from bridge.library_store import PersistenceStore

logger = logging.getLogger(__name__)


class LibrarySync:
    """Apply save/delete intents to the stored library.

    Every call re-reads the store. Each operation is read-then-write and relies on
    the router running handlers one at a time.
    """

    def __init__(self, *, store: PersistenceStore) -> None:
        self._store = store
        self._last_known_good: GameLibrary = []

    @property
    def last_known_good(self) -> GameLibrary:
        return list(self._last_known_good)

    def list(self) -> GameLibrary:
        games = self._store.get() or []
        self._last_known_good = list(games)
        return games

    def save(self, game: SavedGame) -> GameLibrary:
        games = self.list()
        for idx, existing in enumerate(games):
            if existing.same_game(game):
                games[idx] = game
                break
        else:
            games.append(game)

        self._store.set(games)
        self._last_known_good = list(games)
        logger.info("Saved game %s (%d in library)", game.game_id, len(games))
        return games

    def remove(self, game: SavedGame) -> GameLibrary:
        games = self.list()
        idx = next((i for i, existing in enumerate(games) if existing.same_game(game)), None)
        if idx is None:
            logger.debug("Saved game %s not in library; nothing to delete", game.game_id)
            return games

        del games[idx]
        self._store.set(games)
        self._last_known_good = list(games)
        logger.info("Deleted saved game %s (%d left)", game.game_id, len(games))
        return games
