from enum import Enum


class PacketType(str, Enum):
    """Socket.IO event names exchanged on the realtime namespace."""

    AUTHENTICATE = 'authenticate'
    AUTH_RESPONSE = 'auth_response'
    MESSAGE_RESPONSE = 'message_response'
    GAME_DATA_REQUEST = 'game_data_request'
    GAME_DATA = 'game_data'
    LOCATION_UPDATE = 'location_update'
    LOCATION_DATA = 'location_data'
    FACTORY_DATA_REQUEST = 'factory_data_request'
    FACTORY_DATA = 'factory_data'
    FACTORY_BUILD = 'factory_build'
    FACTORY_ATTACK = 'factory_attack'
    FACTORY_LEVEL_UP = 'factory_level_up'
    FACTORY_DEFENCE_BUY = 'factory_defence_buy'
    FACTORY_DEPOSIT_IN = 'factory_deposit_in'
    FACTORY_WITHDRAW_OUT = 'factory_withdraw_out'
    FACTORY_CAPTURED = 'factory_captured'
    FACTORY_DESTROYED = 'factory_destroyed'
    PING_FACTORIES = 'ping_factories'
    SHOP_BUY_IN = 'shop_buy_in'
    SHOP_SELL_OUT = 'shop_sell_out'
