import time
from typing import Optional

from turfwar import db
from turfwar.geo import Coordinate
from turfwar.models import GameUser, User


class LiveUser:
    """Runtime state of one user in one live game."""

    def __init__(self, game, user_id: int):
        self.game = game
        self.user_id = user_id
        self.location: Optional[Coordinate] = None
        self.location_time: Optional[float] = None

    def set_location(self, coordinate: Coordinate) -> None:
        self.location = coordinate
        self.location_time = time.time()

    def has_recent_location(self) -> bool:
        if self.location is None or self.location_time is None:
            return False
        return time.time() - self.location_time <= self.game.config.user.location_max_age

    def get_user_model(self) -> Optional[User]:
        return db.session.get(User, self.user_id)

    def get_game_user(self) -> Optional[GameUser]:
        return GameUser.query.filter_by(game_id=self.game.id, user_id=self.user_id).first()

    def get_team_id(self) -> Optional[int]:
        game_user = self.get_game_user()
        return game_user.team_id if game_user else None

    def get_team(self):
        game_user = self.get_game_user()
        return game_user.team if game_user else None

    def is_team(self, team) -> bool:
        """Check whether the user is in the given team (a Team or team id)."""
        if team is None:
            return False
        team_id = getattr(team, 'id', team)
        own_team_id = self.get_team_id()
        return own_team_id is not None and own_team_id == team_id

    def get_strength(self) -> Optional[int]:
        game_user = self.get_game_user()
        return game_user.strength if game_user else None

    def get_name(self) -> str:
        user = self.get_user_model()
        return user.name if user else f"User {self.user_id}"

    def get_balance_table(self, previous_money=None, previous_in=None, previous_out=None):
        """Current balances with the change since the given previous values."""
        game_user = self.get_game_user()
        if game_user is None:
            return None
        rows = {}
        for key, current, previous in (('money', game_user.money, previous_money),
                                       ('in', game_user.in_, previous_in),
                                       ('out', game_user.out, previous_out)):
            row = {'current': current}
            if previous is not None:
                row['delta'] = current - previous
            rows[key] = row
        return rows

    def __repr__(self):
        return f"<LiveUser {self.user_id} game={self.game.id}>"
