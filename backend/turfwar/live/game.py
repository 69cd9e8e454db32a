import threading
from typing import Dict, List, Optional

from turfwar import db
from turfwar.errors import GameError, InsufficientFundsError, NotFoundError, NotInRangeError
from turfwar.game_config import GameConfig
from turfwar.live.factory_manager import FactoryManager
from turfwar.live.shop_manager import ShopManager
from turfwar.live.user import LiveUser
from turfwar.models import STAGE_FINISHED, Factory, Game, GameUser, Team
from turfwar.realtime.packet_processor import packet_processor
from turfwar.realtime.packet_type import PacketType
from turfwar.services.scheduler import scheduler


class LiveGame:
    """A running game: its live users, factories and shops.

    ``lock`` serializes every operation that reads and then writes balances,
    ownership or levels, so ticks, attacks and transactions that race on the
    same rows apply one after another.
    """

    def __init__(self, app, game_id: int):
        self.app = app
        self.id = game_id
        self.config = GameConfig(app.config)
        self.users: Dict[int, LiveUser] = {}
        self.lock = threading.RLock()
        self.loaded = False
        self.factory_manager = FactoryManager(self)
        self.shop_manager = ShopManager(self)
        self._users_lock = threading.Lock()
        self._workers = []

    def load(self) -> None:
        self.factory_manager.load()
        # Broadcasts only reach live users, so every member gets one up front
        for game_user in GameUser.query.filter_by(game_id=self.id).all():
            self.get_user(game_user.user_id)
        self.loaded = True
        self._workers = [
            scheduler.call_every(self.config.factory.tick_interval, self.tick),
            scheduler.call_every(self.config.shop.worker_interval, self.shop_manager.worker),
        ]
        self.app.logger.info(f"[game-load] game={self.id} factories={len(self.factory_manager.all())}")

    def unload(self) -> None:
        self.loaded = False
        for task in self._workers:
            task.cancel()
        self._workers = []
        self.shop_manager.unload()
        self.factory_manager.unload()
        with self._users_lock:
            self.users = {}
        self.app.logger.info(f"[game-unload] game={self.id}")

    def get_game_model(self) -> Optional[Game]:
        return db.session.get(Game, self.id)

    def get_stage(self) -> int:
        game = self.get_game_model()
        return game.stage if game else 0

    def get_teams(self) -> List[Team]:
        return Team.query.filter_by(game_id=self.id).all()

    def get_user(self, user_id, create: bool = True) -> Optional[LiveUser]:
        """Get the live user for a user in this game, or None if the user didn't join."""
        if user_id is None:
            return None
        user_id = int(user_id)
        with self._users_lock:
            live_user = self.users.get(user_id)
        if live_user is not None or not create:
            return live_user
        if GameUser.query.filter_by(game_id=self.id, user_id=user_id).first() is None:
            return None
        with self._users_lock:
            return self.users.setdefault(user_id, LiveUser(self, user_id))

    # ---- Operations ----

    def update_user_location(self, live_user: LiveUser, coordinate) -> None:
        live_user.set_location(coordinate)
        for factory in self.factory_manager.all():
            try:
                factory.update_visibility_state(live_user)
            except Exception:
                self.app.logger.exception(
                    f"[visibility-error] factory={factory.id} user={live_user.user_id}, ignoring")
        own_shop = self.shop_manager.get_shop_for_user(live_user)
        for shop in list(self.shop_manager.shops):
            shop.update_range_state(live_user)
            if shop is own_shop:
                for other_user in list(self.users.values()):
                    shop.update_range_state(other_user)
        self.send_location_data(live_user)

    def tick(self) -> int:
        if not self.loaded:
            return 0
        produced = 0
        for factory in self.factory_manager.all():
            try:
                if factory.tick():
                    produced += 1
            except Exception:
                db.session.rollback()
                self.app.logger.exception(f"[tick-error] game={self.id} factory={factory.id}")
        return produced

    def ping_factories(self, live_user: LiveUser) -> int:
        """Pay to ping all non-ally factories around the user; returns the number pinged."""
        cfg = self.config.user
        with self.lock:
            game_user = live_user.get_game_user()
            if game_user is None or not game_user.is_player:
                raise GameError('Only players in a team can ping factories.')
            if not live_user.has_recent_location():
                raise NotInRangeError('Your location is unknown, wait for a location fix and try again.')
            if game_user.money < cfg.ping_cost:
                raise InsufficientFundsError("You don't have enough money to ping factories.")
            game_user.subtract_money(cfg.ping_cost)
            db.session.commit()
            team_id = game_user.team_id

        pinged = 0
        for factory in self.factory_manager.all():
            model = factory.get_model()
            if model is None or model.team_id == team_id:
                continue
            if not model.location.is_in_range(live_user.location, cfg.ping_range):
                continue
            factory.ping_for(live_user, cfg.ping_duration, send_location_update=False)
            pinged += 1
        self.app.logger.info(f"[ping] game={self.id} user={live_user.user_id} factories={pinged}")
        self.send_location_data(live_user)
        return pinged

    # ---- Data packets ----

    def build_game_data(self, user_id: int) -> Dict:
        game = self.get_game_model()
        game_user = GameUser.query.filter_by(game_id=self.id, user_id=user_id).first()
        if game is None or game_user is None:
            raise NotFoundError("You're not part of this game.")
        live_user = self.get_user(user_id)
        shop = self.shop_manager.get_shop_for_user(live_user)
        standings = []
        for team in self.get_teams():
            standings.append({
                'team': team.id,
                'name': team.name,
                'factories': Factory.query.filter_by(game_id=self.id, team_id=team.id).count(),
            })
        return {
            'game': self.id,
            'stage': game.stage,
            'roles': game_user.state,
            'team': game_user.team.name if game_user.team else None,
            'balance': {'money': game_user.money, 'in': game_user.in_, 'out': game_user.out},
            'strength': game_user.strength,
            'shop': shop.to_dict(live_user) if shop else None,
            'standings': standings,
        }

    def send_game_data(self, user_id: int, sids=None) -> None:
        data = self.build_game_data(user_id)
        if sids:
            for sid in ([sids] if isinstance(sids, str) else sids):
                packet_processor.send_packet(PacketType.GAME_DATA, data, sid)
        else:
            packet_processor.send_packet_user(PacketType.GAME_DATA, data, user_id)

    def send_game_data_safe(self, user_id: int) -> None:
        try:
            self.send_game_data(user_id)
        except Exception:
            self.app.logger.exception(f"[game-data-error] game={self.id} user={user_id}, ignoring")

    def broadcast_game_data(self) -> None:
        for live_user in list(self.users.values()):
            self.send_game_data_safe(live_user.user_id)

    def build_location_data(self, live_user: LiveUser) -> Dict:
        game_user = live_user.get_game_user()
        team_id = game_user.team_id if game_user else None
        spectator = bool(game_user and game_user.is_spectator)

        users = []
        for other in list(self.users.values()):
            if other is live_user or not other.has_recent_location():
                continue
            if not spectator and (team_id is None or not other.is_team(team_id)):
                continue
            users.append({'user': other.user_id, 'name': other.get_name(), 'location': other.location.to_dict()})

        factories = []
        for factory in self.factory_manager.all():
            model = factory.get_model()
            if model is None:
                continue
            state = factory.get_visibility_state(live_user)
            if not (state['visible'] or self.get_stage() >= STAGE_FINISHED):
                continue
            factories.append({
                'factory': factory.id,
                'name': model.name,
                'location': model.location.to_dict(),
                'range': factory.get_range(live_user),
                'in_range': state['in_range'],
                'ally': state['ally'],
                'pinged': state['pinged'],
                'team': model.team_id,
            })

        shops = []
        for shop in list(self.shop_manager.shops):
            if shop.location is None or not shop.user.has_recent_location():
                continue
            if shop.user is not live_user and not shop.user.is_team(team_id) and not shop.is_in_range_memory(live_user):
                continue
            shops.append(shop.to_dict(live_user))

        return {'game': self.id, 'users': users, 'factories': factories, 'shops': shops}

    def send_location_data(self, live_user: LiveUser, sids=None) -> None:
        data = self.build_location_data(live_user)
        if sids:
            for sid in ([sids] if isinstance(sids, str) else sids):
                packet_processor.send_packet(PacketType.LOCATION_DATA, data, sid)
        else:
            packet_processor.send_packet_user(PacketType.LOCATION_DATA, data, live_user.user_id)

    def broadcast_location_data(self, live_user: Optional[LiveUser] = None) -> None:
        targets = [live_user] if live_user is not None else list(self.users.values())
        for target in targets:
            try:
                self.send_location_data(target)
            except Exception:
                self.app.logger.exception(f"[location-data-error] game={self.id} user={target.user_id}, ignoring")

    def __repr__(self):
        return f"<LiveGame {self.id}>"
