import pytest

from conftest import BASE, offset
from config import Config
from turfwar.errors import InvalidAmountError
from turfwar.game_config import GameConfig
from turfwar.geo import Coordinate


def _config(**overrides):
    values = {key: getattr(Config, key) for key in dir(Config) if key.isupper()}
    values.update(overrides)
    return GameConfig(values)


def test_distance_and_range():
    assert BASE.distance_to(offset(100)) == pytest.approx(100, abs=0.01)
    assert BASE.is_in_range(offset(15), 15.01)
    assert not BASE.is_in_range(offset(16), 15)
    assert not BASE.is_in_range(None, 15)


def test_coordinate_from_dict():
    assert Coordinate.from_dict({'latitude': '52.5', 'longitude': 4}) == Coordinate(52.5, 4.0)
    for bad in ({}, None, {'latitude': 91, 'longitude': 0}, {'latitude': 'x', 'longitude': 0}):
        with pytest.raises(InvalidAmountError):
            Coordinate.from_dict(bad)


def test_factory_formulas():
    cfg = _config().factory
    assert cfg.get_range(1) == 15
    assert cfg.get_range(3) == 17
    assert cfg.get_active_range(1) == pytest.approx(19.5)
    assert cfg.get_level_cost(2) == 100
    assert cfg.get_level_cost(3) == 150
    assert cfg.get_production_in(2) == 20
    assert cfg.get_production_out(2) == 10
    assert [u['defence'] for u in cfg.get_defence_upgrades(5)] == [5, 10, 25]
    assert cfg.attack_new_in(21) == 10
    assert cfg.attack_new_defence(None) == 0


def test_defence_steps_accept_lists():
    cfg = _config(FACTORY_DEFENCE_UPGRADE_STEPS=[1, 2]).factory
    assert cfg.defence_upgrade_steps == [1, 2]


def test_shop_formulas():
    cfg = _config(SHOP_PRICE_VARIANCE=0, SHOP_LIFETIME_MIN_SEC=100, SHOP_LIFETIME_MAX_SEC=100).shop
    assert cfg.get_in_sell_price() == 2.0
    assert cfg.get_out_buy_price() == 6.0
    assert cfg.get_shop_lifetime() == 100
    assert cfg.get_preferred_shop_count(0) == 0
    assert cfg.get_preferred_shop_count(1) == 1
    assert cfg.get_preferred_shop_count(5) == 1
    assert cfg.get_preferred_shop_count(6) == 2


def test_shop_price_variance_stays_in_bounds():
    cfg = _config(SHOP_PRICE_VARIANCE=0.2).shop
    for _ in range(20):
        assert 1.6 <= cfg.get_in_sell_price() <= 2.4
