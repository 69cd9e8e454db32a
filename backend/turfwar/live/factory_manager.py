import threading
from typing import Dict, Optional

from turfwar import db
from turfwar.errors import GameError, InsufficientFundsError, NotInRangeError
from turfwar.live.factory import LiveFactory
from turfwar.models import Factory


class FactoryManager:
    def __init__(self, game):
        self.game = game
        self.factories: Dict[int, LiveFactory] = {}
        self._lock = threading.RLock()

    def load(self) -> None:
        with self._lock:
            for factory in Factory.query.filter_by(game_id=self.game.id).all():
                if factory.id not in self.factories:
                    self.factories[factory.id] = LiveFactory(factory, self.game)

    def get_factory(self, factory_id) -> Optional[LiveFactory]:
        try:
            factory_id = int(factory_id)
        except (TypeError, ValueError):
            return None
        with self._lock:
            return self.factories.get(factory_id)

    def all(self):
        with self._lock:
            return list(self.factories.values())

    def unload_factory(self, factory: LiveFactory) -> None:
        with self._lock:
            self.factories.pop(factory.id, None)
        factory.unload()

    def unload(self) -> None:
        for factory in self.all():
            self.unload_factory(factory)

    def build_factory(self, live_user, name) -> LiveFactory:
        """Build a new factory for the user's team at the user's location."""
        name = (name or '').strip()
        if not name:
            raise GameError('A factory needs a name.')
        with self.game.lock:
            game_user = live_user.get_game_user()
            if game_user is None or not game_user.is_player:
                raise GameError('Only players in a team can build factories.')
            if not live_user.has_recent_location():
                raise NotInRangeError('Your location is unknown, wait for a location fix and try again.')
            cost = self.game.config.factory.build_cost
            if game_user.money < cost:
                raise InsufficientFundsError("You don't have enough money to build a factory.")
            game_user.subtract_money(cost)
            factory = Factory(
                game_id=self.game.id,
                team_id=game_user.team_id,
                user_id=live_user.user_id,
                name=name[:64],
                level=1,
                defence=self.game.config.factory.default_defence,
                in_=0,
                out=0,
                latitude=live_user.location.latitude,
                longitude=live_user.location.longitude,
            )
            db.session.add(factory)
            db.session.commit()
            live_factory = LiveFactory(factory, self.game)
            with self._lock:
                self.factories[factory.id] = live_factory

        self.game.app.logger.info(f"[factory-build] game={self.game.id} factory={factory.id} user={live_user.user_id}")
        for other_user in list(self.game.users.values()):
            live_factory.update_visibility_state(other_user, broadcast=False)
        live_factory.broadcast_data()
        return live_factory
