from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required, current_user
from turfwar import db
from turfwar.models import STAGE_FINISHED, STAGE_LOBBY, STAGE_RUNNING, Game, GameUser, Team
from turfwar.live.game_manager import game_manager
from turfwar.game_config import GameConfig


games = Blueprint('games', __name__)


def _get_game_or_404(game_code):
    return Game.query.filter_by(game_code=game_code.upper()).first_or_404()


@games.route('/create', methods=['POST'])
@login_required
def create_game():
    """Creates a new game in the lobby stage, owned by the current user."""
    data = request.get_json(silent=True) or {}
    name = (data.get('name') or 'Game').strip()[:64] or 'Game'
    new_game = Game(name=name, user_id=current_user.id)
    db.session.add(new_game)
    db.session.commit()
    current_app.logger.info(f"[game-create] game={new_game.id} code={new_game.game_code} owner={current_user.id}")
    return jsonify({
        'message': 'New game created!',
        'game_code': new_game.game_code,
        'id': new_game.id,
    }), 201


@games.route('/<string:game_code>/teams', methods=['POST'])
@login_required
def create_team(game_code):
    game = _get_game_or_404(game_code)
    if not game.has_manage_permission(current_user):
        return jsonify({'error': 'You may not manage this game'}), 403
    if game.stage == STAGE_FINISHED:
        return jsonify({'error': 'Game is finished'}), 400
    data = request.get_json(silent=True) or {}
    name = (data.get('name') or '').strip()
    if not name:
        return jsonify({'error': 'Team name is required'}), 400
    team = Team(name=name[:64], game_id=game.id)
    db.session.add(team)
    db.session.commit()
    return jsonify(team.to_dict()), 201


@games.route('/<string:game_code>/join', methods=['POST'])
@login_required
def join_game(game_code):
    """Adds the current user to a game, optionally in a team or as a special or spectator."""
    game = _get_game_or_404(game_code)
    if game.stage == STAGE_FINISHED:
        return jsonify({'error': 'This game is finished'}), 403
    if GameUser.query.filter_by(game_id=game.id, user_id=current_user.id).first():
        return jsonify({'error': 'You are already in this game'}), 400

    data = request.get_json(silent=True) or {}
    team_id = data.get('team_id')
    if team_id is not None and not Team.query.filter_by(id=team_id, game_id=game.id).first():
        return jsonify({'error': 'Team not found'}), 404

    config = GameConfig(current_app.config)
    game_user = GameUser(
        game_id=game.id,
        user_id=current_user.id,
        team_id=team_id,
        is_special=bool(data.get('special')),
        is_spectator=bool(data.get('spectator')),
        money=config.user.start_money,
        in_=0,
        out=0,
        strength=config.user.default_strength,
    )
    db.session.add(game_user)
    db.session.commit()
    live_game = game_manager.get_game(game.id)
    if live_game is not None:
        live_game.get_user(current_user.id)
    return jsonify(game_user.to_dict()), 201


@games.route('/<string:game_code>/start', methods=['POST'])
@login_required
def start_game(game_code):
    game = _get_game_or_404(game_code)
    if not game.has_manage_permission(current_user):
        return jsonify({'error': 'You may not manage this game'}), 403
    if game.stage == STAGE_RUNNING:
        # Idempotent start: already started
        game_manager.load_game(game.id)
        return jsonify(game.to_dict())
    if game.stage != STAGE_LOBBY:
        return jsonify({'error': 'Game is not in the lobby'}), 400
    if game.teams.count() < 2:
        return jsonify({'error': 'At least two teams are required to start'}), 400

    game.stage = STAGE_RUNNING
    db.session.commit()
    live_game = game_manager.load_game(game.id)
    live_game.broadcast_game_data()
    current_app.logger.info(f"[game-start] game={game.id}")
    return jsonify(game.to_dict())


@games.route('/<string:game_code>/finish', methods=['POST'])
@login_required
def finish_game(game_code):
    game = _get_game_or_404(game_code)
    if not game.has_manage_permission(current_user):
        return jsonify({'error': 'You may not manage this game'}), 403
    if game.stage != STAGE_RUNNING:
        return jsonify({'error': 'Game is not running'}), 400

    game.stage = STAGE_FINISHED
    db.session.commit()
    live_game = game_manager.get_game(game.id)
    if live_game is not None:
        # Finished games reveal every factory
        live_game.broadcast_game_data()
        live_game.broadcast_location_data()
        game_manager.unload_game(game.id)
    current_app.logger.info(f"[game-finish] game={game.id}")
    return jsonify(game.to_dict())


@games.route('/<string:game_code>/state', methods=['GET'])
def get_game_state(game_code):
    game = _get_game_or_404(game_code)
    payload = game.to_dict()
    live_game = game_manager.get_game(game.id)
    payload['live'] = live_game is not None
    payload['shop_count'] = len(live_game.shop_manager.shops) if live_game else 0
    return jsonify(payload)
