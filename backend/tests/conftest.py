import os
import sys
from types import SimpleNamespace

import pytest

# Ensure the backend root (containing the `turfwar` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from config import Config
from turfwar import create_app, db, socketio
from turfwar.geo import Coordinate


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    BCRYPT_LOG_ROUNDS = 4
    # Deterministic shops
    SHOP_PRICE_VARIANCE = 0.0
    SHOP_LIFETIME_MIN_SEC = 100
    SHOP_LIFETIME_MAX_SEC = 100
    SHOP_ALERT_TIME_SEC = 10


BASE = Coordinate(52.0, 5.0)


def offset(metres):
    """A coordinate the given number of metres north of BASE."""
    return Coordinate(BASE.latitude + metres / 111194.93, BASE.longitude)


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import turfwar.models  # noqa: F401
        db.create_all()
        yield application
        from turfwar.live.game_manager import game_manager
        game_manager.unload_all()
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


@pytest.fixture()
def world(flask_app):
    """A running game with a red factory at BASE.

    alice and bob play for red, carol for blue, dave spectates and erin is a
    special user without a team.
    """
    from turfwar.live.game_manager import game_manager
    from turfwar.models import STAGE_RUNNING, Factory, Game, GameUser, Team, User

    users = {}
    for name in ('alice', 'bob', 'carol', 'dave', 'erin'):
        user = User(username=name, display_name=name.capitalize())
        user.set_password('password')
        db.session.add(user)
        users[name] = user
    db.session.commit()

    game = Game(name='Test', user_id=users['alice'].id, stage=STAGE_RUNNING)
    db.session.add(game)
    db.session.commit()
    red = Team(name='Red', game_id=game.id)
    blue = Team(name='Blue', game_id=game.id)
    db.session.add_all([red, blue])
    db.session.commit()

    roles = {
        'alice': dict(team_id=red.id),
        'bob': dict(team_id=red.id),
        'carol': dict(team_id=blue.id),
        'dave': dict(is_spectator=True),
        'erin': dict(is_special=True),
    }
    for name, role in roles.items():
        db.session.add(GameUser(game_id=game.id, user_id=users[name].id, money=500, in_=0, out=0,
                                strength=10, **role))
    factory = Factory(game_id=game.id, team_id=red.id, user_id=users['alice'].id, name='Mill',
                      level=1, defence=5, in_=0, out=0,
                      latitude=BASE.latitude, longitude=BASE.longitude)
    db.session.add(factory)
    db.session.commit()

    live_game = game_manager.load_game(game.id)
    return SimpleNamespace(
        game=game,
        red=red,
        blue=blue,
        users=users,
        factory=factory,
        live_game=live_game,
        live_factory=live_game.factory_manager.get_factory(factory.id),
        user=lambda name: live_game.get_user(users[name].id),
        game_user=lambda name: GameUser.query.filter_by(game_id=game.id, user_id=users[name].id).first(),
    )


def login_socket(flask_app, username, password='password'):
    """Log in over HTTP and open a socket sharing that session."""
    http = flask_app.test_client()
    res = http.post('/login', json={'username': username, 'password': password})
    assert res.status_code == 200
    return socketio.test_client(flask_app, namespace='/ws', flask_test_client=http)
