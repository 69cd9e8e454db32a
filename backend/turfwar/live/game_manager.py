import threading
from typing import Dict, Iterator, Optional, Tuple

from turfwar.live.game import LiveGame


class GameManager:
    """Process-wide registry of live (running) games."""

    def __init__(self):
        self.app = None
        self.games: Dict[int, LiveGame] = {}
        self._lock = threading.Lock()

    def init_app(self, app) -> None:
        self.unload_all()
        self.app = app

    def load_game(self, game_id: int) -> LiveGame:
        with self._lock:
            live_game = self.games.get(game_id)
            if live_game is not None:
                return live_game
            live_game = LiveGame(self.app, game_id)
            self.games[game_id] = live_game
        live_game.load()
        return live_game

    def unload_game(self, game_id: int) -> None:
        with self._lock:
            live_game = self.games.pop(game_id, None)
        if live_game is not None:
            live_game.unload()

    def unload_all(self) -> None:
        with self._lock:
            games = list(self.games.values())
            self.games = {}
        for live_game in games:
            live_game.unload()

    def get_game(self, game_id) -> Optional[LiveGame]:
        try:
            game_id = int(game_id)
        except (TypeError, ValueError):
            return None
        with self._lock:
            return self.games.get(game_id)

    def iter_games(self) -> Iterator[LiveGame]:
        with self._lock:
            games = list(self.games.values())
        return iter(games)

    def find_factory(self, factory_id) -> Tuple[Optional[LiveGame], Optional[object]]:
        for live_game in self.iter_games():
            factory = live_game.factory_manager.get_factory(factory_id)
            if factory is not None:
                return live_game, factory
        return None, None

    def find_shop(self, token) -> Tuple[Optional[LiveGame], Optional[object]]:
        for live_game in self.iter_games():
            shop = live_game.shop_manager.get_shop_by_token(token)
            if shop is not None:
                return live_game, shop
        return None, None

    def send_game_data(self, game_id: int, user_id: int, sids=None) -> None:
        live_game = self.get_game(game_id)
        if live_game is not None:
            live_game.send_game_data(user_id, sids)

    def broadcast_location_data(self, game_id: int, live_user=None) -> None:
        live_game = self.get_game(game_id)
        if live_game is not None:
            live_game.broadcast_location_data(live_user)


game_manager = GameManager()
