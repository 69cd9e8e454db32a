import threading
from typing import Dict, Optional

from turfwar import db
from turfwar.errors import InsufficientFundsError, NotInRangeError
from turfwar.live.amount import resolve_amount, round_half_up
from turfwar.models import STAGE_RUNNING
from turfwar.realtime.packet_processor import packet_processor
from turfwar.services.scheduler import scheduler
from turfwar.services.tokens import generate_token


class LiveShop:
    """A shop carried by a dealer user.

    A shop lives for a limited time. Shortly before it expires the dealer is
    warned and the dealer role is handed over to another player of the same
    team, if the team still wants a shop.
    """

    def __init__(self, user, shop_manager):
        self.token: Optional[str] = None
        self.user = user
        self.shop_manager = shop_manager
        self.in_sell_price: Optional[float] = None
        self.out_buy_price: Optional[float] = None
        self.range: Optional[float] = None
        self.lifetime: Optional[int] = None
        self.alert_time: Optional[int] = None
        self._range_mem = set()
        self._lock = threading.RLock()

    @property
    def game(self):
        return self.shop_manager.game

    @property
    def location(self):
        return self.user.location

    def is_token(self, token) -> bool:
        if not isinstance(token, str) or self.token is None:
            return False
        return self.token == token.strip().lower()

    def get_name(self) -> str:
        return self.user.get_name()

    def load(self) -> None:
        cfg = self.game.config.shop
        self.token = generate_token(32)
        self.in_sell_price = cfg.get_in_sell_price()
        self.out_buy_price = cfg.get_out_buy_price()
        self.range = cfg.range
        self.lifetime = cfg.get_shop_lifetime()
        self.alert_time = min(cfg.alert_time, self.lifetime)
        scheduler.call_later(self.lifetime - self.alert_time, self.prepare_transfer)
        self.game.app.logger.info(
            f"[shop-load] game={self.game.id} user={self.user.user_id} lifetime={self.lifetime}s "
            f"in_sell={self.in_sell_price} out_buy={self.out_buy_price}")

    # ---- Handover ----

    def prepare_transfer(self) -> None:
        if not self.game.loaded or self not in self.shop_manager.shops:
            return
        team_id = self.user.get_team_id()
        if team_id is None:
            return

        new_user = self.shop_manager.find_new_shop_user(team_id)
        delta = self.shop_manager.get_team_preferred_shop_count_delta(team_id)

        # Keep the shop for now if nobody can take over and the team still needs it
        if new_user is None and delta >= 0:
            scheduler.call_later(self.game.config.shop.worker_interval, self.prepare_transfer)
            return

        if new_user is not None:
            self.shop_manager.schedule_user(new_user)
        scheduler.call_later(self.alert_time, self.transfer)

        if new_user is None:
            message = 'You will lose your dealer ability soon...'
        else:
            message = 'Your dealer ability will be given to another player soon...'
        packet_processor.send_message(message, toast=True, user_id=self.user.user_id)
        self.game.app.logger.info(
            f"[shop-handover] game={self.game.id} from={self.user.user_id} "
            f"to={new_user.user_id if new_user else None} delta={delta}")

    def transfer(self) -> None:
        self.shop_manager.remove_shop(self)
        packet_processor.send_message("You're no longer a dealer", toast=True, user_id=self.user.user_id)
        if self.game.get_stage() == STAGE_RUNNING:
            self.game.send_game_data_safe(self.user.user_id)

    # ---- Range ----

    def get_range(self, live_user=None) -> float:
        if live_user is not None and self.is_in_range_memory(live_user):
            return self.game.config.shop.active_range
        return self.game.config.shop.range

    def is_in_range_memory(self, live_user) -> bool:
        with self._lock:
            return live_user in self._range_mem

    def set_in_range_memory(self, live_user, in_range: bool) -> bool:
        with self._lock:
            if (live_user in self._range_mem) == bool(in_range):
                return False
            if in_range:
                self._range_mem.add(live_user)
            else:
                self._range_mem.discard(live_user)
            return True

    def is_user_in_range(self, live_user) -> bool:
        if live_user is None:
            return False
        if live_user.user_id == self.user.user_id:
            return True
        if not live_user.has_recent_location() or self.location is None:
            return False
        return self.location.is_in_range(live_user.location, self.get_range(live_user))

    def update_range_state(self, live_user) -> bool:
        return self.set_in_range_memory(live_user, self.is_user_in_range(live_user))

    # ---- Transactions ----

    def _require_in_range(self, live_user):
        if not self.is_user_in_range(live_user):
            raise NotInRangeError("You're not in range of this shop.")
        game_user = live_user.get_game_user()
        if game_user is None:
            raise NotInRangeError("You're not part of this game.")
        return game_user

    def get_affordable_in(self, money) -> int:
        """The largest amount of in goods whose rounded cost fits in ``money``."""
        price = self.in_sell_price
        if not price or price <= 0 or money <= 0:
            return 0
        amount = int((money + 0.5) // price)
        while amount > 0 and round_half_up(amount * price) > money:
            amount -= 1
        while round_half_up((amount + 1) * price) <= money:
            amount += 1
        return amount

    def buy_in(self, live_user, amount=None, use_all=False) -> Dict[str, int]:
        """Buy in goods with money; ``use_all`` spends as much money as possible."""
        with self.game.lock:
            game_user = self._require_in_range(live_user)
            affordable = self.get_affordable_in(game_user.money)
            amount = resolve_amount(amount, use_all, affordable,
                                    "You don't have enough money to buy this much goods.",
                                    "You can't buy no nothin'.")
            cost = round_half_up(amount * self.in_sell_price)
            if cost > game_user.money:
                raise InsufficientFundsError("You don't have enough money to buy this much goods.")
            previous = {'previous_money': game_user.money, 'previous_in': game_user.in_}
            game_user.subtract_money(cost)
            game_user.add_in(amount)
            db.session.commit()
        return {'amount': amount, 'money': cost, **previous}

    def sell_out(self, live_user, amount=None, use_all=False) -> Dict[str, int]:
        """Sell out goods for money."""
        with self.game.lock:
            game_user = self._require_in_range(live_user)
            amount = resolve_amount(amount, use_all, game_user.out,
                                    "Failed to sell, you don't have this much goods available.",
                                    "You can't sell no nothin'.")
            income = round_half_up(amount * self.out_buy_price)
            previous = {'previous_money': game_user.money, 'previous_out': game_user.out}
            game_user.subtract_out(amount)
            game_user.add_money(income)
            db.session.commit()
        return {'amount': amount, 'money': income, **previous}

    def to_dict(self, live_user=None) -> Dict:
        return {
            'token': self.token,
            'name': self.get_name(),
            'user': self.user.user_id,
            'location': self.location.to_dict() if self.location else None,
            'range': self.get_range(live_user),
            'in_range': self.is_user_in_range(live_user) if live_user is not None else False,
            'in_sell_price': self.in_sell_price,
            'out_buy_price': self.out_buy_price,
        }

    def __repr__(self):
        return f"<LiveShop user={self.user.user_id} game={self.game.id}>"
