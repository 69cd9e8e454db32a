from conftest import BASE, login_socket, offset
from turfwar import db
from turfwar.models import Factory


def _events(test_client, name):
    return [pkt['args'][0] for pkt in test_client.get_received('/ws') if pkt['name'] == name]


def _location(coordinate):
    return {'latitude': coordinate.latitude, 'longitude': coordinate.longitude}


def test_socket_connect_without_login(sio_client):
    if not sio_client.is_connected('/ws'):
        sio_client.connect(namespace='/ws')
    assert sio_client.is_connected('/ws')

    connected = _events(sio_client, 'connected')
    assert connected and connected[0]['authenticated'] is False


def test_socket_connect_with_login_authenticates(flask_app, world):
    carol = login_socket(flask_app, 'carol')
    connected = _events(carol, 'connected')
    assert connected[0]['authenticated'] is True

    carol.emit('authenticate', {}, namespace='/ws')
    response = _events(carol, 'auth_response')
    assert response == [{'authenticated': True, 'user': world.users['carol'].id, 'name': 'Carol'}]


def test_ping_pong(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('ping', {'n': 1}, namespace='/ws')
    assert _events(sio_client, 'pong') == [{'n': 1}]


def test_packet_requires_authentication(sio_client, world):
    sio_client.get_received('/ws')
    sio_client.emit('location_update', {'game': world.game.id, 'location': _location(BASE)}, namespace='/ws')
    messages = _events(sio_client, 'message_response')
    assert messages[0]['error'] is True
    assert messages[0]['dialog'] is True
    assert 'authenticated' in messages[0]['message']


def test_malformed_packet_is_rejected(flask_app, world):
    carol = login_socket(flask_app, 'carol')
    carol.get_received('/ws')
    carol.emit('location_update', {'game': world.game.id}, namespace='/ws')
    messages = _events(carol, 'message_response')
    assert messages[0]['message'] == 'Received malformed packet.'


def test_invalid_location_is_rejected(flask_app, world):
    carol = login_socket(flask_app, 'carol')
    carol.get_received('/ws')
    carol.emit('location_update', {'game': world.game.id, 'location': {'latitude': 'x'}}, namespace='/ws')
    messages = _events(carol, 'message_response')
    assert messages[0]['message'] == 'Invalid location'


def test_location_update_sends_location_data(flask_app, world):
    carol = login_socket(flask_app, 'carol')
    carol.get_received('/ws')
    carol.emit('location_update', {'game': world.game.id, 'location': _location(offset(10))}, namespace='/ws')

    data = _events(carol, 'location_data')[-1]
    assert data['game'] == world.game.id
    assert [f['factory'] for f in data['factories']] == [world.factory.id]
    assert data['factories'][0]['in_range'] is True
    assert world.live_factory.is_in_range_memory(world.user('carol'))


def test_team_mates_see_each_other(flask_app, world):
    alice = login_socket(flask_app, 'alice')
    world.live_game.update_user_location(world.user('bob'), offset(40))
    world.live_game.update_user_location(world.user('carol'), offset(40))
    alice.get_received('/ws')
    alice.emit('location_update', {'game': world.game.id, 'location': _location(offset(0))}, namespace='/ws')

    data = _events(alice, 'location_data')[-1]
    assert [u['name'] for u in data['users']] == ['Bob']


def test_game_data_request(flask_app, world):
    carol = login_socket(flask_app, 'carol')
    carol.get_received('/ws')
    carol.emit('game_data_request', {'game': world.game.id}, namespace='/ws')
    data = _events(carol, 'game_data')[0]
    assert data['balance'] == {'money': 500, 'in': 0, 'out': 0}
    assert data['team'] == 'Blue'
    assert data['shop'] is None


def test_game_data_request_for_inactive_game(flask_app, world):
    carol = login_socket(flask_app, 'carol')
    carol.get_received('/ws')
    carol.emit('game_data_request', {'game': 9999}, namespace='/ws')
    messages = _events(carol, 'message_response')
    assert "isn't active" in messages[0]['message']


def test_factory_data_request(flask_app, world):
    alice = login_socket(flask_app, 'alice')
    alice.get_received('/ws')
    alice.emit('factory_data_request', {'factory': world.factory.id}, namespace='/ws')
    data = _events(alice, 'factory_data')[0]
    assert data['factory'] == world.factory.id
    assert data['data']['visible'] is True


def test_attack_out_of_range_over_socket(flask_app, world):
    carol = login_socket(flask_app, 'carol')
    world.live_game.update_user_location(world.user('carol'), offset(100))
    carol.get_received('/ws')
    carol.emit('factory_attack', {'factory': world.factory.id}, namespace='/ws')
    messages = _events(carol, 'message_response')
    assert "not in range" in messages[0]['message']
    assert db.session.get(Factory, world.factory.id) is not None


def test_attack_over_socket_destroys_factory(flask_app, world):
    carol = login_socket(flask_app, 'carol')
    alice = login_socket(flask_app, 'alice')
    carol.emit('location_update', {'game': world.game.id, 'location': _location(offset(10))}, namespace='/ws')
    carol.get_received('/ws')
    alice.get_received('/ws')

    carol.emit('factory_attack', {'factory': world.factory.id}, namespace='/ws')

    messages = _events(carol, 'message_response')
    assert any('You destroyed' in m['message'] for m in messages)
    assert db.session.get(Factory, world.factory.id) is None
    assert _events(alice, 'factory_destroyed')


def test_unknown_shop_is_reported(flask_app, world):
    carol = login_socket(flask_app, 'carol')
    carol.get_received('/ws')
    carol.emit('shop_sell_out', {'shop': 'missing', 'amount': 1}, namespace='/ws')
    messages = _events(carol, 'message_response')
    assert "couldn't find shop" in messages[0]['message']


def test_shop_buy_in_over_socket(flask_app, world):
    from turfwar.services.scheduler import scheduler
    bob = world.user('bob')
    world.live_game.update_user_location(bob, offset(0))
    world.live_game.shop_manager.schedule_user(bob)
    scheduler.run_pending()
    shop = world.live_game.shop_manager.get_shop_for_user(bob)

    carol = login_socket(flask_app, 'carol')
    carol.emit('location_update', {'game': world.game.id, 'location': _location(offset(5))}, namespace='/ws')
    carol.get_received('/ws')
    carol.emit('shop_buy_in', {'shop': shop.token, 'amount': 10}, namespace='/ws')

    messages = _events(carol, 'message_response')
    assert messages[-1]['message'] == 'Bought 10 goods for $20.'
    assert messages[-1]['balance']['money'] == {'current': 480, 'delta': -20}
    assert world.game_user('carol').in_ == 10
