from flask import current_app, request
from flask_login import current_user
from flask_socketio import emit

from turfwar.errors import GameError, NotAuthenticatedError, NotFoundError, NotInRangeError
from turfwar.geo import Coordinate
from turfwar.live.game_manager import game_manager
from turfwar.realtime.packet_processor import NAMESPACE, packet_processor
from turfwar.realtime.packet_type import PacketType
from turfwar import socketio


def _format_goods(amount):
    return f"{amount:,}"


def _format_money(amount):
    return f"${amount:,}"


def _require_fields(packet, *fields):
    if any(field not in packet for field in fields):
        raise GameError('Received malformed packet.')


def _require_amount(packet):
    if 'amount' not in packet and 'all' not in packet:
        raise GameError('Received malformed packet.')
    return packet.get('amount'), packet.get('all') is True


def _require_user_id(sid):
    user_id = packet_processor.get_session_user(sid)
    if user_id is None:
        raise NotAuthenticatedError()
    return user_id


def _require_live_user(live_game, user_id):
    live_user = live_game.get_user(user_id)
    if live_user is None:
        raise NotFoundError("You're not part of this game.")
    return live_user


def _require_game(game_id):
    live_game = game_manager.get_game(game_id)
    if live_game is None:
        raise NotFoundError("This game isn't active.")
    return live_game


def _require_factory(factory_id):
    live_game, live_factory = game_manager.find_factory(factory_id)
    if live_factory is None:
        raise NotFoundError("Couldn't find this factory, it might not exist anymore.")
    return live_game, live_factory


def _authenticate(sid):
    if not current_user.is_authenticated:
        return None
    packet_processor.authenticate(sid, current_user.id)
    return current_user


# ---- Connection lifecycle ----

def handle_connect(auth=None):
    user = _authenticate(request.sid)
    emit('connected', {'message': f'Connected to {NAMESPACE}', 'authenticated': user is not None})


def handle_disconnect(*args):
    user_id = packet_processor.end_session(request.sid)
    if user_id is not None:
        current_app.logger.info(f"[disconnect] user={user_id}")


def handle_ping(data):
    emit('pong', data or {})


# ---- Packet handlers ----

def handle_authenticate(packet, sid):
    user = _authenticate(sid)
    if user is None:
        packet_processor.send_packet(PacketType.AUTH_RESPONSE, {'authenticated': False}, sid)
        return
    packet_processor.send_packet(PacketType.AUTH_RESPONSE, {
        'authenticated': True,
        'user': user.id,
        'name': user.name,
    }, sid)


def handle_game_data_request(packet, sid):
    _require_fields(packet, 'game')
    user_id = _require_user_id(sid)
    live_game = _require_game(packet['game'])
    _require_live_user(live_game, user_id)
    live_game.send_game_data(user_id, sids=[sid])


def handle_location_update(packet, sid):
    _require_fields(packet, 'game', 'location')
    user_id = _require_user_id(sid)
    live_game = _require_game(packet['game'])
    live_user = _require_live_user(live_game, user_id)
    live_game.update_user_location(live_user, Coordinate.from_dict(packet['location']))


def handle_factory_data_request(packet, sid):
    _require_fields(packet, 'factory')
    user_id = _require_user_id(sid)
    live_game, live_factory = _require_factory(packet['factory'])
    _require_live_user(live_game, user_id)
    live_factory.send_data(user_id, sids=[sid])


def handle_factory_build(packet, sid):
    _require_fields(packet, 'game', 'name')
    user_id = _require_user_id(sid)
    live_game = _require_game(packet['game'])
    live_user = _require_live_user(live_game, user_id)
    live_factory = live_game.factory_manager.build_factory(live_user, packet['name'])
    packet_processor.send_message(f"Factory <i>{live_factory.get_name()}</i> has been built.", toast=True, sid=sid)
    live_game.send_game_data(user_id)
    live_game.send_location_data(live_user)


def handle_factory_attack(packet, sid):
    _require_fields(packet, 'factory')
    user_id = _require_user_id(sid)
    live_game, live_factory = _require_factory(packet['factory'])
    live_user = _require_live_user(live_game, user_id)
    if not live_factory.is_user_in_range(live_user):
        raise NotInRangeError("You're not in range of this factory.")
    factory_name = live_factory.get_name()
    outcome = live_factory.attack(live_user)
    if outcome == 'destroyed':
        message = f"You destroyed <i>{factory_name}</i>."
    else:
        message = f"You captured <i>{factory_name}</i>."
    packet_processor.send_message(message, toast=True, sid=sid)


def handle_factory_level_up(packet, sid):
    _require_fields(packet, 'factory')
    user_id = _require_user_id(sid)
    live_game, live_factory = _require_factory(packet['factory'])
    live_user = _require_live_user(live_game, user_id)
    level = live_factory.level_up(live_user)
    packet_processor.send_message(f"The factory is now level {level}.", toast=True, sid=sid)
    live_game.send_game_data(user_id)


def handle_factory_defence_buy(packet, sid):
    _require_fields(packet, 'factory', 'index')
    user_id = _require_user_id(sid)
    live_game, live_factory = _require_factory(packet['factory'])
    live_user = _require_live_user(live_game, user_id)
    defence = live_factory.buy_defence_upgrade(live_user, packet['index'])
    packet_processor.send_message(f"The factory defence is now {defence}.", toast=True, sid=sid)
    live_game.send_game_data(user_id)


def handle_factory_deposit_in(packet, sid):
    _require_fields(packet, 'factory')
    amount, use_all = _require_amount(packet)
    user_id = _require_user_id(sid)
    live_game, live_factory = _require_factory(packet['factory'])
    live_user = _require_live_user(live_game, user_id)
    deposited = live_factory.deposit_in(live_user, amount, use_all)
    packet_processor.send_message(f"Deposited {_format_goods(deposited)} goods.", toast=True, sid=sid)
    live_game.send_game_data(user_id)


def handle_factory_withdraw_out(packet, sid):
    _require_fields(packet, 'factory')
    amount, use_all = _require_amount(packet)
    user_id = _require_user_id(sid)
    live_game, live_factory = _require_factory(packet['factory'])
    live_user = _require_live_user(live_game, user_id)
    withdrawn = live_factory.withdraw_out(live_user, amount, use_all)
    packet_processor.send_message(f"Withdrew {_format_goods(withdrawn)} products.", toast=True, sid=sid)
    live_game.send_game_data(user_id)


def handle_ping_factories(packet, sid):
    _require_fields(packet, 'game')
    user_id = _require_user_id(sid)
    live_game = _require_game(packet['game'])
    live_user = _require_live_user(live_game, user_id)
    count = live_game.ping_factories(live_user)
    packet_processor.send_message(f"Pinged {count} factor{'y' if count == 1 else 'ies'}.", toast=True, sid=sid)
    live_game.send_game_data(user_id)


def _require_shop(token):
    live_game, live_shop = game_manager.find_shop(token)
    if live_shop is None:
        raise NotFoundError("The transaction failed, couldn't find shop. "
                            "The shop you're trying to use might not be available anymore.")
    return live_game, live_shop


def handle_shop_buy_in(packet, sid):
    _require_fields(packet, 'shop')
    amount, use_all = _require_amount(packet)
    user_id = _require_user_id(sid)
    live_game, live_shop = _require_shop(packet['shop'])
    live_user = _require_live_user(live_game, user_id)
    result = live_shop.buy_in(live_user, amount, use_all)
    live_game.send_game_data_safe(user_id)
    packet_processor.send_message(
        f"Bought {_format_goods(result['amount'])} goods for {_format_money(result['money'])}.",
        toast=True, ttl=10 * 1000, sid=sid,
        balance=live_user.get_balance_table(previous_money=result['previous_money'],
                                            previous_in=result['previous_in']))


def handle_shop_sell_out(packet, sid):
    _require_fields(packet, 'shop')
    amount, use_all = _require_amount(packet)
    user_id = _require_user_id(sid)
    live_game, live_shop = _require_shop(packet['shop'])
    live_user = _require_live_user(live_game, user_id)
    result = live_shop.sell_out(live_user, amount, use_all)
    live_game.send_game_data_safe(user_id)
    packet_processor.send_message(
        f"Sold {_format_goods(result['amount'])} products for {_format_money(result['money'])}.",
        toast=True, ttl=10 * 1000, sid=sid,
        balance=live_user.get_balance_table(previous_money=result['previous_money'],
                                            previous_out=result['previous_out']))


PACKET_HANDLERS = {
    PacketType.AUTHENTICATE: handle_authenticate,
    PacketType.GAME_DATA_REQUEST: handle_game_data_request,
    PacketType.LOCATION_UPDATE: handle_location_update,
    PacketType.FACTORY_DATA_REQUEST: handle_factory_data_request,
    PacketType.FACTORY_BUILD: handle_factory_build,
    PacketType.FACTORY_ATTACK: handle_factory_attack,
    PacketType.FACTORY_LEVEL_UP: handle_factory_level_up,
    PacketType.FACTORY_DEFENCE_BUY: handle_factory_defence_buy,
    PacketType.FACTORY_DEPOSIT_IN: handle_factory_deposit_in,
    PacketType.FACTORY_WITHDRAW_OUT: handle_factory_withdraw_out,
    PacketType.PING_FACTORIES: handle_ping_factories,
    PacketType.SHOP_BUY_IN: handle_shop_buy_in,
    PacketType.SHOP_SELL_OUT: handle_shop_sell_out,
}


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on the realtime namespace."""
    packet_processor.reset()
    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=NAMESPACE)
    socketio.on_event('ping', handle_ping, namespace=NAMESPACE)
    for packet_type, handler in PACKET_HANDLERS.items():
        packet_processor.register_handler(packet_type, handler)
