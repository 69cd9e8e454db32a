import threading
from typing import Callable, Dict, List, Optional, Tuple

from turfwar import db
from turfwar.errors import GameError, InsufficientFundsError, InvalidAmountError, NotFoundError, NotInRangeError
from turfwar.live.amount import resolve_amount
from turfwar.models import STAGE_FINISHED, Factory, Team, User
from turfwar.realtime.packet_processor import packet_processor
from turfwar.realtime.packet_type import PacketType
from turfwar.services.scheduler import scheduler


class LiveFactory:
    """In-memory state of one factory in a live game.

    The factory remembers, per live user, whether it is visible to them, whether
    they are in range, and whether it is pinged for them. Range checks use the
    larger active range while a user is remembered as in range, so users on the
    edge of a factory don't flicker in and out.
    """

    def __init__(self, factory, game):
        if isinstance(factory, Factory):
            self.id = factory.id
        else:
            try:
                self.id = int(factory)
            except (TypeError, ValueError):
                raise ValueError('Invalid factory instance or ID')
        self.game = game
        self._lock = threading.RLock()
        self._visible_mem = set()
        self._range_mem = set()
        self._ping_mem = set()
        # Latest ping per user; only the matching decay clears the ping
        self._ping_tokens: Dict[object, object] = {}

    def is_factory(self, factory) -> bool:
        if isinstance(factory, (Factory, LiveFactory)):
            factory = factory.id
        try:
            return self.id == int(factory)
        except (TypeError, ValueError):
            raise ValueError('Invalid factory ID')

    def get_model(self) -> Optional[Factory]:
        return db.session.get(Factory, self.id)

    def get_name(self) -> Optional[str]:
        factory = self.get_model()
        return factory.name if factory else None

    def get_team_id(self) -> Optional[int]:
        factory = self.get_model()
        return factory.team_id if factory else None

    def is_team(self, team) -> bool:
        if team is None:
            return False
        team_id = self.get_team_id()
        return team_id is not None and team_id == getattr(team, 'id', team)

    def get_level(self) -> int:
        return self.get_model().level

    def get_defence(self) -> int:
        return self.get_model().defence

    def unload(self) -> None:
        with self._lock:
            self._visible_mem.clear()
            self._range_mem.clear()
            self._ping_mem.clear()
            self._ping_tokens.clear()

    # ---- Visibility ----

    def get_visibility_state(self, live_user) -> Dict[str, bool]:
        result = {'ally': False, 'visible': False, 'in_range': False, 'pinged': False}
        if live_user is None:
            return result
        factory = self.get_model()
        if factory is None:
            return result

        stage = self.game.get_stage()
        game_user = live_user.get_game_user()
        state = game_user.state if game_user else {'player': False, 'special': False, 'spectator': False}

        if state['spectator'] or stage >= STAGE_FINISHED:
            result['visible'] = True
            result['in_range'] = False

        if self.is_in_ping_memory(live_user):
            result['visible'] = True
            result['pinged'] = True

        if state['player'] and factory.team_id is not None and factory.team_id == game_user.team_id:
            result['ally'] = True
            result['visible'] = True

        if (state['player'] or state['special']) and live_user.has_recent_location() and stage < STAGE_FINISHED:
            in_range = self._is_in_range(factory, live_user)
            result['in_range'] = in_range
            if in_range:
                result['visible'] = True

        return result

    def is_visible_for(self, live_user) -> bool:
        if self.game.get_stage() >= STAGE_FINISHED:
            return True
        return self.get_visibility_state(live_user)['visible']

    def update_visibility_state(self, live_user, broadcast: bool = True) -> bool:
        """Recompute and memorize the state for a user; broadcast when it changed."""
        if live_user is None:
            return False
        state = self.get_visibility_state(live_user)
        with self._lock:
            changed = self.set_in_visibility_memory(live_user, state['visible'])
            if self.set_in_range_memory(live_user, state['in_range']):
                changed = True
        if changed and broadcast:
            self.broadcast_data()
        return changed

    def refresh_memories(self) -> None:
        for live_user in list(self.game.users.values()):
            self.update_visibility_state(live_user, broadcast=False)

    @staticmethod
    def _set_in(memory, live_user, value) -> bool:
        if (live_user in memory) == bool(value):
            return False
        if value:
            memory.add(live_user)
        else:
            memory.discard(live_user)
        return True

    def is_in_visibility_memory(self, live_user) -> bool:
        with self._lock:
            return live_user in self._visible_mem

    def set_in_visibility_memory(self, live_user, visible: bool) -> bool:
        with self._lock:
            return self._set_in(self._visible_mem, live_user, visible)

    def is_in_range_memory(self, live_user) -> bool:
        with self._lock:
            return live_user in self._range_mem

    def set_in_range_memory(self, live_user, in_range: bool) -> bool:
        with self._lock:
            return self._set_in(self._range_mem, live_user, in_range)

    def get_range_memory(self) -> List:
        with self._lock:
            return list(self._range_mem)

    def is_in_ping_memory(self, live_user) -> bool:
        with self._lock:
            return live_user in self._ping_mem

    def set_in_ping_memory(self, live_user, pinged: bool, send_location_update: bool = True) -> bool:
        with self._lock:
            changed = self._set_in(self._ping_mem, live_user, pinged)
        if changed and send_location_update:
            try:
                self.game.send_location_data(live_user)
            except Exception:
                self.game.app.logger.exception(
                    f"[location-data-error] factory={self.id} user={live_user.user_id}, ignoring")
        return changed

    def ping_for(self, live_user, duration: float, send_location_update: bool = True,
                 callback: Optional[Callable] = None):
        """Ping this factory for a user, clearing the ping after ``duration`` seconds."""
        if live_user is None or duration is None or duration <= 0:
            raise ValueError('Invalid live user instance or invalid ping duration.')
        token = object()
        with self._lock:
            self._ping_tokens[live_user] = token
        self.set_in_ping_memory(live_user, True, send_location_update)
        return scheduler.call_later(duration, self._ping_decay, live_user, token, callback)

    def _ping_decay(self, live_user, token, callback) -> None:
        with self._lock:
            if self._ping_tokens.get(live_user) is not token:
                return
            self._ping_tokens.pop(live_user, None)
        self.set_in_ping_memory(live_user, False, True)
        if callable(callback):
            callback()

    # ---- Range ----

    def get_range(self, live_user=None) -> float:
        level = self.get_level()
        if live_user is not None and self.is_in_range_memory(live_user):
            return self.game.config.factory.get_active_range(level)
        return self.game.config.factory.get_range(level)

    def _is_in_range(self, factory: Factory, live_user) -> bool:
        if live_user is None or not live_user.has_recent_location():
            return False
        return factory.location.is_in_range(live_user.location, self.get_range(live_user))

    def is_user_in_range(self, live_user) -> bool:
        if live_user is None or not live_user.has_recent_location():
            return False
        factory = self.get_model()
        if factory is None:
            return False
        return self._is_in_range(factory, live_user)

    # ---- Economy ----

    def get_production_in(self) -> int:
        return self.game.config.factory.get_production_in(self.get_level())

    def get_production_out(self) -> int:
        return self.game.config.factory.get_production_out(self.get_level())

    def get_next_level_cost(self) -> int:
        return self.game.config.factory.get_level_cost(self.get_level() + 1)

    def get_defence_upgrades(self) -> List[Dict[str, int]]:
        return self.game.config.factory.get_defence_upgrades(self.get_defence())

    def can_modify(self, live_user) -> bool:
        if live_user is None:
            return False
        team_id = self.get_team_id()
        user_team_id = live_user.get_team_id()
        if team_id is None or user_team_id is None or team_id != user_team_id:
            return False
        return self.is_user_in_range(live_user)

    def _require_modify(self, live_user):
        if not self.can_modify(live_user):
            raise NotInRangeError("You can't modify this factory, make sure you're in range of an ally factory.")
        game_user = live_user.get_game_user()
        if game_user is None:
            raise NotFoundError("You're not part of this game.")
        return game_user

    def tick(self) -> bool:
        """Convert one tick worth of in goods into out goods, if there's enough in."""
        with self.game.lock:
            factory = self.get_model()
            if factory is None:
                return False
            production_in = self.game.config.factory.get_production_in(factory.level)
            production_out = self.game.config.factory.get_production_out(factory.level)
            if factory.in_ < production_in:
                return False
            factory.in_ -= production_in
            factory.out += production_out
            db.session.commit()
        self.broadcast_data()
        return True

    def level_up(self, live_user) -> int:
        with self.game.lock:
            game_user = self._require_modify(live_user)
            factory = self.get_model()
            cost = self.game.config.factory.get_level_cost(factory.level + 1)
            if game_user.money < cost:
                raise InsufficientFundsError("You don't have enough money to upgrade this factory.")
            game_user.subtract_money(cost)
            factory.level += 1
            db.session.commit()
            level = factory.level
        self.game.app.logger.info(f"[factory-level] factory={self.id} user={live_user.user_id} level={level} cost={cost}")
        self.broadcast_data()
        return level

    def buy_defence_upgrade(self, live_user, index) -> int:
        with self.game.lock:
            game_user = self._require_modify(live_user)
            factory = self.get_model()
            upgrades = self.game.config.factory.get_defence_upgrades(factory.defence)
            try:
                index = int(index)
            except (TypeError, ValueError):
                raise InvalidAmountError('Invalid defence upgrade.')
            if not 0 <= index < len(upgrades):
                raise InvalidAmountError('Invalid defence upgrade.')
            upgrade = upgrades[index]
            if game_user.money < upgrade['cost']:
                raise InsufficientFundsError("You don't have enough money for this defence upgrade.")
            game_user.subtract_money(upgrade['cost'])
            factory.defence += upgrade['defence']
            db.session.commit()
            defence = factory.defence
        self.broadcast_data()
        return defence

    def deposit_in(self, live_user, amount=None, use_all=False) -> int:
        with self.game.lock:
            game_user = self._require_modify(live_user)
            amount = resolve_amount(amount, use_all, game_user.in_,
                                    "You don't have this much goods available.",
                                    "You can't deposit nothing.")
            game_user.subtract_in(amount)
            self.get_model().in_ += amount
            db.session.commit()
        self.broadcast_data()
        return amount

    def withdraw_out(self, live_user, amount=None, use_all=False) -> int:
        with self.game.lock:
            game_user = self._require_modify(live_user)
            factory = self.get_model()
            amount = resolve_amount(amount, use_all, factory.out,
                                    "The factory doesn't have this much goods available.",
                                    "You can't withdraw nothing.")
            factory.out -= amount
            game_user.add_out(amount)
            db.session.commit()
        self.broadcast_data()
        return amount

    # ---- Conquering ----

    def get_conquer(self) -> Tuple[int, int]:
        """Return (conquer value, user count). Above zero, the factory may be taken over."""
        factory = self.get_model()
        if factory is None:
            return 0, 0
        conquer_value = -(factory.defence or 0)
        user_count = 0
        for live_user in self.get_range_memory():
            if not live_user.has_recent_location():
                continue
            strength = live_user.get_strength()
            if strength is None:
                continue
            conquer_value += -strength if live_user.is_team(factory.team_id) else strength
            user_count += 1
        return conquer_value, user_count

    def attack(self, live_user) -> str:
        """Attack the factory; returns 'captured' or 'destroyed'."""
        with self.game.lock:
            factory = self.get_model()
            if factory is None:
                raise NotFoundError("This factory doesn't exist anymore.")
            user_team_id = live_user.get_team_id()
            if user_team_id is None:
                raise GameError("You can't attack a factory without being in a team.")
            conquer_value, _ = self.get_conquer()
            if conquer_value <= 0:
                raise GameError('The factory defence is too strong, the conquer value must be above zero.')
            factory_team_id = factory.team_id
            if factory_team_id is not None and factory_team_id == user_team_id:
                raise GameError("You can't take over an ally factory.")

            factory_name = factory.name
            user_team = db.session.get(Team, user_team_id)
            details = {
                'factory': self.id,
                'factory_name': factory_name,
                'user_name': live_user.get_name(),
                'team_name': user_team.name if user_team else None,
            }
            range_users = set(self.get_range_memory())

            if factory.level <= 1:
                self.destroy()
                self.game.app.logger.info(
                    f"[factory-destroyed] factory={self.id} user={live_user.user_id} conquer={conquer_value}")
                self._notify_attack(PacketType.FACTORY_DESTROYED, dict(details, broadcast=True), live_user,
                                    user_team_id, factory_team_id, range_users)
                for other_user in list(self.game.users.values()):
                    self.game.send_game_data_safe(other_user.user_id)
                return 'destroyed'

            cfg = self.game.config.factory
            factory.in_ = cfg.attack_new_in(factory.in_)
            factory.out = cfg.attack_new_out(factory.out)
            factory.defence = cfg.attack_new_defence(factory.defence)
            factory.team_id = user_team_id
            factory.level -= 1
            db.session.commit()

        self.game.app.logger.info(
            f"[factory-captured] factory={self.id} user={live_user.user_id} team={user_team_id} conquer={conquer_value}")
        self.refresh_memories()
        self._notify_attack(PacketType.FACTORY_CAPTURED, details, live_user, user_team_id, factory_team_id, range_users)
        self.broadcast_data()
        try:
            self.game.broadcast_location_data()
        except Exception:
            self.game.app.logger.exception(f"[location-data-error] factory={self.id}, ignoring")
        return 'captured'

    def _notify_attack(self, packet_type, details, attacker, user_team_id, factory_team_id, range_users) -> None:
        for other_user in list(self.game.users.values()):
            try:
                other_team_id = other_user.get_team_id()
                if other_team_id is None:
                    continue
                is_ally = other_team_id == user_team_id
                is_enemy = factory_team_id is not None and other_team_id == factory_team_id
                if not is_ally and not is_enemy and other_user not in range_users:
                    continue
                packet = dict(details, self=other_user.user_id == attacker.user_id, ally=is_ally, enemy=is_enemy)
                packet_processor.send_packet_user(packet_type, packet, other_user.user_id)
            except Exception:
                self.game.app.logger.exception(
                    f"[attack-notify-error] factory={self.id} user={other_user.user_id}, ignoring")

    def destroy(self) -> None:
        factory = self.get_model()
        if factory is not None:
            db.session.delete(factory)
            db.session.commit()
        self.game.factory_manager.unload_factory(self)

    # ---- Data packets ----

    def build_data(self, user_id: int) -> Dict:
        live_user = self.game.get_user(user_id)
        user = db.session.get(User, user_id)
        game = self.game.get_game_model()
        data = {
            'visible': self.is_visible_for(live_user),
            'can_manage': game.has_manage_permission(user),
        }
        if not data['visible']:
            return data

        factory = self.get_model()
        if factory is None:
            raise NotFoundError("This factory doesn't exist anymore.")
        if factory.game_id != game.id:
            raise GameError('The factory is not part of this game')

        conquer_value, conquer_user_count = self.get_conquer()
        state = self.get_visibility_state(live_user)
        data.update({
            'name': factory.name,
            'level': factory.level,
            'defence': factory.defence,
            'conquer_value': conquer_value,
            'conquer_user_count': conquer_user_count,
            'in': factory.in_,
            'out': factory.out,
            'creator_name': factory.creator.name if factory.creator else None,
            'team_name': factory.team.name if factory.team else None,
            'production_in': self.get_production_in(),
            'production_out': self.get_production_out(),
            'defence_upgrades': self.get_defence_upgrades(),
            'next_level_cost': self.get_next_level_cost(),
            'in_range': state['in_range'],
            'ally': state['ally'],
        })
        return data

    def send_data(self, user_id: int, sids=None) -> None:
        packet = {
            'factory': self.id,
            'game': self.game.id,
            'data': self.build_data(user_id),
        }
        if sids is None:
            sids = []
        elif isinstance(sids, str):
            sids = [sids]
        if sids:
            for sid in sids:
                packet_processor.send_packet(PacketType.FACTORY_DATA, packet, sid)
        else:
            packet_processor.send_packet_user(PacketType.FACTORY_DATA, packet, user_id)

    def broadcast_data(self) -> None:
        """Send the factory data to every live user the factory is visible for."""
        for live_user in list(self.game.users.values()):
            try:
                if self.is_visible_for(live_user):
                    self.send_data(live_user.user_id)
            except Exception:
                self.game.app.logger.exception(
                    f"[factory-data-error] factory={self.id} user={live_user.user_id}, ignoring")

    def __str__(self):
        return f"[Factory:{self.id}]"

    def __repr__(self):
        return f"<LiveFactory {self.id} game={self.game.id}>"
