from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:5174",
    "http://127.0.0.1:5174",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from turfwar.routes import main
    flask_app.register_blueprint(main)

    from turfwar.api.games import games
    flask_app.register_blueprint(games, url_prefix='/api/games')

    # Live game state and deferred work are process-wide; rebind them to this app
    from turfwar.services.scheduler import scheduler
    from turfwar.live.game_manager import game_manager
    scheduler.init_app(flask_app)
    game_manager.init_app(flask_app)

    # Importing here ensures the handlers bind to the initialized socketio instance
    from turfwar.realtime.handlers import register_socketio_handlers
    register_socketio_handlers()

    from turfwar.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from turfwar.models import Game, Team
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            users = []
            for name in ['testuser1', 'testuser2', 'testuser3']:
                user = User(username=name, display_name=name.capitalize())
                user.set_password('password')
                db.session.add(user)
                users.append(user)
            users[0].is_admin = True
            db.session.commit()

            game = Game(name='Demo', user_id=users[0].id)
            db.session.add(game)
            db.session.commit()
            for team_name in ['Red', 'Blue']:
                db.session.add(Team(name=team_name, game_id=game.id))
            db.session.commit()
            print(f'Database has been reset and seeded! Demo game code: {game.game_code}')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
