import random
import threading
from typing import List, Optional

from turfwar.models import STAGE_RUNNING, GameUser
from turfwar.live.shop import LiveShop
from turfwar.realtime.packet_processor import packet_processor
from turfwar.services.scheduler import scheduler


class ShopManager:
    def __init__(self, game):
        self.game = game
        self.shops: List[LiveShop] = []
        self.scheduled_users = []
        self._lock = threading.RLock()

    def get_shop_by_token(self, token) -> Optional[LiveShop]:
        for shop in list(self.shops):
            if shop.is_token(token):
                return shop
        return None

    def get_shop_for_user(self, live_user) -> Optional[LiveShop]:
        for shop in list(self.shops):
            if shop.user is live_user:
                return shop
        return None

    def is_shop_user(self, live_user) -> bool:
        return self.get_shop_for_user(live_user) is not None

    def is_scheduled_user(self, live_user) -> bool:
        with self._lock:
            return live_user in self.scheduled_users

    def add_shop(self, shop: LiveShop) -> None:
        with self._lock:
            if shop not in self.shops:
                self.shops.append(shop)

    def remove_shop(self, shop: LiveShop) -> bool:
        with self._lock:
            if shop not in self.shops:
                return False
            self.shops.remove(shop)
            return True

    def find_new_shop_user(self, team_id: int):
        """Pick a random team player with a recent location that isn't (about to be) a dealer."""
        candidates = []
        for live_user in list(self.game.users.values()):
            if not live_user.has_recent_location():
                continue
            game_user = live_user.get_game_user()
            if game_user is None or not game_user.is_player or game_user.team_id != team_id:
                continue
            if self.is_shop_user(live_user) or self.is_scheduled_user(live_user):
                continue
            candidates.append(live_user)
        if not candidates:
            return None
        return random.choice(candidates)

    def get_team_shop_count(self, team_id: int) -> int:
        with self._lock:
            users = [shop.user for shop in self.shops] + list(self.scheduled_users)
        return sum(1 for live_user in users if live_user.get_team_id() == team_id)

    def get_team_preferred_shop_count_delta(self, team_id: int) -> int:
        """Preferred shop count for the team minus its current (and scheduled) shops."""
        player_count = GameUser.query.filter_by(game_id=self.game.id, team_id=team_id,
                                                is_spectator=False).count()
        preferred = self.game.config.shop.get_preferred_shop_count(player_count)
        return preferred - self.get_team_shop_count(team_id)

    def schedule_user(self, live_user) -> None:
        with self._lock:
            if live_user in self.scheduled_users:
                return
            self.scheduled_users.append(live_user)
        packet_processor.send_message('You will become a dealer soon...', toast=True, user_id=live_user.user_id)
        scheduler.call_later(self.game.config.shop.alert_time, self._activate_shop, live_user)

    def _activate_shop(self, live_user) -> Optional[LiveShop]:
        with self._lock:
            if live_user not in self.scheduled_users:
                return None
            self.scheduled_users.remove(live_user)
        if not self.game.loaded or self.game.get_stage() != STAGE_RUNNING:
            return None

        shop = LiveShop(live_user, self)
        shop.load()
        self.add_shop(shop)
        packet_processor.send_message("You're now a dealer", toast=True, user_id=live_user.user_id)
        self.game.send_game_data_safe(live_user.user_id)
        return shop

    def worker(self) -> int:
        """Schedule new dealers for teams that have fewer shops than preferred."""
        if not self.game.loaded or self.game.get_stage() != STAGE_RUNNING:
            return 0
        scheduled = 0
        for team in self.game.get_teams():
            delta = self.get_team_preferred_shop_count_delta(team.id)
            while delta > 0:
                live_user = self.find_new_shop_user(team.id)
                if live_user is None:
                    break
                self.schedule_user(live_user)
                scheduled += 1
                delta -= 1
        if scheduled:
            self.game.app.logger.info(f"[shop-worker] game={self.game.id} scheduled={scheduled}")
        return scheduled

    def unload(self) -> None:
        with self._lock:
            self.shops = []
            self.scheduled_users = []
