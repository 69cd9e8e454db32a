from turfwar import db, bcrypt
from turfwar.geo import Coordinate
from flask_login import UserMixin
import string
import random

# Game stages
STAGE_LOBBY = 0
STAGE_RUNNING = 1
STAGE_FINISHED = 2


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    display_name = db.Column(db.String(64), nullable=True)
    is_admin = db.Column(db.Boolean, default=False, nullable=False)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    @property
    def name(self):
        return self.display_name or self.username

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'name': self.name,
        }


def generate_game_code(length=4):
    """Generate a unique, short game code."""
    while True:
        code = ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))
        if not Game.query.filter_by(game_code=code).first():
            return code


class Game(db.Model):
    __tablename__ = 'game'
    id = db.Column(db.Integer, primary_key=True)
    game_code = db.Column(db.String(4), unique=True, index=True)
    name = db.Column(db.String(64), nullable=False, default='Game')
    stage = db.Column(db.Integer, nullable=False, default=STAGE_LOBBY)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    owner = db.relationship('User')
    teams = db.relationship('Team', back_populates='game', lazy='dynamic')
    game_users = db.relationship('GameUser', back_populates='game', lazy='dynamic')
    factories = db.relationship('Factory', back_populates='game', lazy='dynamic')

    def __init__(self, **kwargs):
        super(Game, self).__init__(**kwargs)
        if not self.game_code:
            self.game_code = generate_game_code()
        if self.stage is None:
            self.stage = STAGE_LOBBY

    def has_manage_permission(self, user):
        if user is None:
            return False
        return bool(user.is_admin) or (self.user_id is not None and self.user_id == user.id)

    def to_dict(self):
        return {
            'id': self.id,
            'game_code': self.game_code,
            'name': self.name,
            'stage': self.stage,
            'owner_id': self.user_id,
            'teams': [t.to_dict() for t in self.teams],
            'users': [gu.to_dict() for gu in self.game_users],
            'factory_count': self.factories.count(),
        }


class Team(db.Model):
    __tablename__ = 'team'
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=False)
    name = db.Column(db.String(64), nullable=False)
    game = db.relationship('Game', back_populates='teams')

    def to_dict(self):
        return {
            'id': self.id,
            'game_id': self.game_id,
            'name': self.name,
        }


class GameUser(db.Model):
    """A user's membership, role and balances in one game."""
    __tablename__ = 'game_user'
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    team_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=True)
    is_special = db.Column(db.Boolean, default=False, nullable=False)
    is_spectator = db.Column(db.Boolean, default=False, nullable=False)
    money = db.Column(db.Integer, default=0, nullable=False)
    in_ = db.Column('in', db.Integer, default=0, nullable=False)
    out = db.Column(db.Integer, default=0, nullable=False)
    strength = db.Column(db.Integer, default=0, nullable=False)
    game = db.relationship('Game', back_populates='game_users')
    user = db.relationship('User')
    team = db.relationship('Team')

    __table_args__ = (db.UniqueConstraint('game_id', 'user_id', name='uq_game_user'),)

    @property
    def is_player(self):
        return self.team_id is not None and not self.is_spectator

    @property
    def state(self):
        return {
            'player': self.is_player,
            'special': bool(self.is_special),
            'spectator': bool(self.is_spectator),
        }

    def add_money(self, amount):
        self.money = (self.money or 0) + amount

    def subtract_money(self, amount):
        self.money = (self.money or 0) - amount

    def add_in(self, amount):
        self.in_ = (self.in_ or 0) + amount

    def subtract_in(self, amount):
        self.in_ = (self.in_ or 0) - amount

    def add_out(self, amount):
        self.out = (self.out or 0) + amount

    def subtract_out(self, amount):
        self.out = (self.out or 0) - amount

    def to_dict(self):
        return {
            'id': self.id,
            'game_id': self.game_id,
            'user_id': self.user_id,
            'team_id': self.team_id,
            'roles': self.state,
            'money': self.money,
            'in': self.in_,
            'out': self.out,
            'strength': self.strength,
        }


class Factory(db.Model):
    __tablename__ = 'factory'
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=False)
    team_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    name = db.Column(db.String(64), nullable=False)
    level = db.Column(db.Integer, default=1, nullable=False)
    defence = db.Column(db.Integer, default=0, nullable=False)
    in_ = db.Column('in', db.Integer, default=0, nullable=False)
    out = db.Column(db.Integer, default=0, nullable=False)
    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    game = db.relationship('Game', back_populates='factories')
    team = db.relationship('Team')
    creator = db.relationship('User')

    @property
    def location(self):
        return Coordinate(self.latitude, self.longitude)

    def to_dict(self):
        return {
            'id': self.id,
            'game_id': self.game_id,
            'team_id': self.team_id,
            'name': self.name,
            'level': self.level,
            'defence': self.defence,
            'in': self.in_,
            'out': self.out,
            'location': self.location.to_dict(),
        }
