import pytest

from conftest import offset
from turfwar import db
from turfwar.errors import InsufficientFundsError, InvalidAmountError, NotInRangeError
from turfwar.services.scheduler import scheduler


@pytest.fixture()
def shop(world):
    """bob (red) is a dealer standing at BASE."""
    bob = world.user('bob')
    world.live_game.update_user_location(bob, offset(0))
    world.live_game.shop_manager.schedule_user(bob)
    assert world.live_game.shop_manager.is_scheduled_user(bob)
    scheduler.run_pending()
    live_shop = world.live_game.shop_manager.get_shop_for_user(bob)
    assert live_shop is not None
    return live_shop


def test_shop_loads_token_prices_and_range(world, shop):
    assert len(shop.token) == 32
    assert shop.token == shop.token.lower()
    assert shop.is_token('  ' + shop.token.upper() + ' ')
    assert not shop.is_token('nope')
    assert shop.in_sell_price == 2.0
    assert shop.out_buy_price == 6.0
    assert shop.alert_time == 10
    assert world.live_game.shop_manager.get_shop_by_token(shop.token) is shop


def test_owner_is_always_in_range(world, shop):
    assert shop.is_user_in_range(world.user('bob'))
    assert not shop.is_user_in_range(None)


def test_user_without_location_is_not_in_range(world, shop):
    assert not shop.is_user_in_range(world.user('alice'))


def test_shop_range_hysteresis(world, shop):
    alice = world.user('alice')
    # 12 m range, 16 m active range
    world.live_game.update_user_location(alice, offset(14))
    assert not shop.is_in_range_memory(alice)
    world.live_game.update_user_location(alice, offset(10))
    assert shop.is_in_range_memory(alice)
    world.live_game.update_user_location(alice, offset(14))
    assert shop.is_in_range_memory(alice)
    world.live_game.update_user_location(alice, offset(17))
    assert not shop.is_in_range_memory(alice)


def test_moving_dealer_updates_range_for_others(world, shop):
    alice = world.user('alice')
    world.live_game.update_user_location(alice, offset(30))
    assert not shop.is_in_range_memory(alice)
    world.live_game.update_user_location(world.user('bob'), offset(25))
    assert shop.is_in_range_memory(alice)


def test_sell_out(world, shop):
    world.game_user('carol').out = 10
    db.session.commit()
    carol = world.user('carol')
    world.live_game.update_user_location(carol, offset(5))

    result = shop.sell_out(carol, amount=4)
    assert result['amount'] == 4
    assert result['money'] == 24
    game_user = world.game_user('carol')
    assert (game_user.out, game_user.money) == (6, 524)

    shop.sell_out(carol, use_all=True)
    assert world.game_user('carol').money == 560


def test_sell_out_validation(world, shop):
    world.game_user('carol').out = 3
    db.session.commit()
    carol = world.user('carol')
    world.live_game.update_user_location(carol, offset(5))
    with pytest.raises(InsufficientFundsError, match="don't have this much goods"):
        shop.sell_out(carol, amount=4)
    with pytest.raises(InvalidAmountError, match='nothin'):
        shop.sell_out(carol, amount=0)
    with pytest.raises(InvalidAmountError):
        shop.sell_out(carol, amount=-2)


def test_sell_out_requires_range(world, shop):
    carol = world.user('carol')
    world.live_game.update_user_location(carol, offset(100))
    with pytest.raises(NotInRangeError):
        shop.sell_out(carol, amount=1)


def test_buy_in(world, shop):
    carol = world.user('carol')
    world.live_game.update_user_location(carol, offset(5))
    result = shop.buy_in(carol, amount=10)
    assert result['money'] == 20
    game_user = world.game_user('carol')
    assert (game_user.in_, game_user.money) == (10, 480)

    shop.buy_in(carol, use_all=True)
    game_user = world.game_user('carol')
    assert (game_user.in_, game_user.money) == (250, 0)
    with pytest.raises(InsufficientFundsError):
        shop.buy_in(carol, amount=1)


def test_balance_table_reports_deltas(world, shop):
    carol = world.user('carol')
    world.live_game.update_user_location(carol, offset(5))
    result = shop.buy_in(carol, amount=5)
    table = carol.get_balance_table(previous_money=result['previous_money'], previous_in=result['previous_in'])
    assert table['money'] == {'current': 490, 'delta': -10}
    assert table['in'] == {'current': 5, 'delta': 5}
    assert table['out'] == {'current': 0}


def test_handover_to_team_mate(world, shop):
    manager = world.live_game.shop_manager
    alice = world.user('alice')
    world.live_game.update_user_location(alice, offset(50))
    bob = world.user('bob')

    # Lifetime ends: alice is scheduled and bob is warned
    scheduler.run_pending()
    assert manager.is_scheduled_user(alice)
    assert manager.get_shop_for_user(bob) is shop

    # Alert time passes: the shop moves to alice
    scheduler.run_pending()
    assert manager.get_shop_for_user(bob) is None
    assert manager.get_shop_for_user(alice) is not None
    assert not manager.is_scheduled_user(alice)


def test_shop_is_kept_while_team_needs_it_and_nobody_can_take_over(world, shop):
    manager = world.live_game.shop_manager
    assert manager.get_team_preferred_shop_count_delta(world.red.id) == 0

    scheduler.run_pending()
    assert manager.get_shop_for_user(world.user('bob')) is shop
    # Rescheduled for another attempt
    assert any(task.fn == shop.prepare_transfer for task in scheduler.pending)


def test_worker_fills_teams_without_shops(world, shop):
    manager = world.live_game.shop_manager
    carol = world.user('carol')
    world.live_game.update_user_location(carol, offset(300))
    assert manager.get_team_preferred_shop_count_delta(world.blue.id) == 1

    assert manager.worker() == 1
    assert manager.is_scheduled_user(carol)
    assert manager.worker() == 0

    scheduler.run_pending()
    assert manager.get_shop_for_user(carol) is not None


def test_shop_handler_lookup_by_token(world, shop):
    from turfwar.live.game_manager import game_manager
    live_game, found = game_manager.find_shop(shop.token)
    assert found is shop
    assert live_game is world.live_game
    assert game_manager.find_shop('missing') == (None, None)


def test_trade_prices_round_halves_up(world, shop):
    world.game_user('carol').out = 2
    db.session.commit()
    carol = world.user('carol')
    world.live_game.update_user_location(carol, offset(5))
    shop.out_buy_price = 2.25
    assert shop.sell_out(carol, amount=2)['money'] == 5
    assert world.game_user('carol').money == 505


def test_buy_in_charges_rounded_cost(world, shop):
    world.game_user('carol').money = 5
    db.session.commit()
    carol = world.user('carol')
    world.live_game.update_user_location(carol, offset(5))
    shop.in_sell_price = 1.67
    assert shop.get_affordable_in(5) == 3

    result = shop.buy_in(carol, amount=3)
    assert result['money'] == 5
    assert world.game_user('carol').money == 0


def test_buy_in_all_spends_as_much_as_possible(world, shop):
    world.game_user('carol').money = 5
    db.session.commit()
    carol = world.user('carol')
    world.live_game.update_user_location(carol, offset(5))
    shop.in_sell_price = 1.67
    assert shop.buy_in(carol, use_all=True)['amount'] == 3
    assert world.game_user('carol').in_ == 3


def test_surplus_shop_is_given_up_without_replacement(world, shop, monkeypatch):
    from turfwar.realtime.packet_processor import packet_processor
    messages = []
    monkeypatch.setattr(packet_processor, 'send_message',
                        lambda message, **kwargs: messages.append((message, kwargs.get('user_id'))))
    manager = world.live_game.shop_manager
    alice = world.user('alice')
    bob = world.user('bob')
    # A second red dealer: two players only want one shop
    manager.schedule_user(alice)

    scheduler.run_pending()
    assert manager.get_shop_for_user(alice) is not None
    assert manager.get_team_preferred_shop_count_delta(world.red.id) == -1
    assert ('You will lose your dealer ability soon...', bob.user_id) in messages
    assert manager.get_shop_for_user(bob) is shop

    scheduler.run_pending()
    assert manager.get_shop_for_user(bob) is None
    assert ("You're no longer a dealer", bob.user_id) in messages


def test_dealer_without_team_keeps_shop_without_handover(world):
    manager = world.live_game.shop_manager
    erin = world.user('erin')
    manager.schedule_user(erin)
    scheduler.run_pending()
    live_shop = manager.get_shop_for_user(erin)
    assert live_shop is not None

    assert scheduler.run_pending() == 1
    assert scheduler.pending == []
    assert manager.get_shop_for_user(erin) is live_shop
