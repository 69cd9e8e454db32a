"""Per-game tuning formulas derived from the Flask config."""

import math
import random


class FactoryConfig:
    def __init__(self, cfg):
        self.base_range = float(cfg['FACTORY_RANGE_M'])
        self.range_per_level = float(cfg['FACTORY_RANGE_PER_LEVEL_M'])
        self.active_range_factor = float(cfg['FACTORY_ACTIVE_RANGE_FACTOR'])
        self.production_in = int(cfg['FACTORY_PRODUCTION_IN'])
        self.production_out = int(cfg['FACTORY_PRODUCTION_OUT'])
        self.level_base_cost = int(cfg['FACTORY_LEVEL_BASE_COST'])
        self.level_cost_multiplier = float(cfg['FACTORY_LEVEL_COST_MULTIPLIER'])
        self.build_cost = int(cfg['FACTORY_BUILD_COST'])
        self.default_defence = int(cfg['FACTORY_DEFAULT_DEFENCE'])
        self.defence_cost_per_point = int(cfg['FACTORY_DEFENCE_COST_PER_POINT'])
        self.attack_keep_factor = float(cfg['FACTORY_ATTACK_KEEP_FACTOR'])
        self.tick_interval = int(cfg['FACTORY_TICK_INTERVAL_SEC'])
        steps = cfg['FACTORY_DEFENCE_UPGRADE_STEPS']
        if isinstance(steps, str):
            steps = [s for s in steps.split(',') if s.strip()]
        self.defence_upgrade_steps = [int(s) for s in steps]

    def get_range(self, level):
        return self.base_range + self.range_per_level * max(0, level - 1)

    def get_active_range(self, level):
        return self.get_range(level) * self.active_range_factor

    def get_production_in(self, level):
        return self.production_in * level

    def get_production_out(self, level):
        return self.production_out * level

    def get_level_cost(self, level):
        return int(round(self.level_base_cost * self.level_cost_multiplier ** max(0, level - 2)))

    def get_defence_upgrades(self, defence):
        # Each upgrade gets more expensive as the factory's defence grows
        upgrades = []
        for step in self.defence_upgrade_steps:
            cost = int(round(step * self.defence_cost_per_point * (1 + (defence or 0) / 50.0)))
            upgrades.append({'defence': step, 'cost': cost})
        return upgrades

    def attack_new_in(self, value):
        return int(math.floor((value or 0) * self.attack_keep_factor))

    def attack_new_out(self, value):
        return int(math.floor((value or 0) * self.attack_keep_factor))

    def attack_new_defence(self, value):
        return int(math.floor((value or 0) * self.attack_keep_factor))


class ShopConfig:
    def __init__(self, cfg):
        self.in_sell_price = float(cfg['SHOP_IN_SELL_PRICE'])
        self.out_buy_price = float(cfg['SHOP_OUT_BUY_PRICE'])
        self.price_variance = float(cfg['SHOP_PRICE_VARIANCE'])
        self.range = float(cfg['SHOP_RANGE_M'])
        self.active_range = float(cfg['SHOP_ACTIVE_RANGE_M'])
        self.lifetime_min = int(cfg['SHOP_LIFETIME_MIN_SEC'])
        self.lifetime_max = int(cfg['SHOP_LIFETIME_MAX_SEC'])
        self.alert_time = int(cfg['SHOP_ALERT_TIME_SEC'])
        self.worker_interval = int(cfg['SHOP_WORKER_INTERVAL_SEC'])
        self.players_per_shop = max(1, int(cfg['SHOP_PLAYERS_PER_SHOP']))

    def _vary(self, price):
        if self.price_variance <= 0:
            return price
        return price * random.uniform(1 - self.price_variance, 1 + self.price_variance)

    def get_in_sell_price(self):
        return round(self._vary(self.in_sell_price), 2)

    def get_out_buy_price(self):
        return round(self._vary(self.out_buy_price), 2)

    def get_shop_lifetime(self):
        low, high = sorted((self.lifetime_min, self.lifetime_max))
        return random.randint(low, high)

    def get_preferred_shop_count(self, player_count):
        if player_count <= 0:
            return 0
        return int(math.ceil(player_count / float(self.players_per_shop)))


class UserConfig:
    def __init__(self, cfg):
        self.location_max_age = int(cfg['LOCATION_MAX_AGE_SEC'])
        self.location_update_interval = int(cfg['LOCATION_UPDATE_INTERVAL_SEC'])
        self.default_strength = int(cfg['USER_DEFAULT_STRENGTH'])
        self.start_money = int(cfg['GAME_USER_START_MONEY'])
        self.ping_cost = int(cfg['PING_COST'])
        self.ping_range = float(cfg['PING_RANGE_M'])
        self.ping_duration = int(cfg['PING_DURATION_SEC'])


class GameConfig:
    def __init__(self, cfg):
        self.factory = FactoryConfig(cfg)
        self.shop = ShopConfig(cfg)
        self.user = UserConfig(cfg)
