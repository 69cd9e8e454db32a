from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user

from turfwar import db
from turfwar.models import GameUser, User

main = Blueprint('main', __name__)

USERNAME_MAX_LENGTH = 64


def _credentials():
    data = request.get_json(silent=True) or {}
    username = (data.get('username') or '').strip()
    password = data.get('password') or ''
    return data, username, password


@main.route('/')
def index():
    return jsonify({'message': 'Turfwar game server', 'namespace': '/ws'})


@main.route('/users/add', methods=['POST'])
def add_user():
    data, username, password = _credentials()
    if not username or not password:
        return jsonify({'error': 'Missing username or password'}), 400
    if len(username) > USERNAME_MAX_LENGTH:
        return jsonify({'error': 'Username is too long'}), 400
    if User.query.filter_by(username=username).first():
        return jsonify({'error': 'Username already exists'}), 400

    display_name = (data.get('display_name') or '').strip()[:USERNAME_MAX_LENGTH] or None
    user = User(username=username, display_name=display_name)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    current_app.logger.info(f"[user-add] user={user.id} username={username}")
    return jsonify({'message': 'User created successfully', 'user': user.to_dict()}), 201


@main.route('/login', methods=['POST'])
def login():
    _, username, password = _credentials()
    user = User.query.filter_by(username=username).first()
    if user is None or not user.check_password(password):
        current_app.logger.info(f"[login-failed] username={username}")
        return jsonify({'error': 'Invalid username or password'}), 401
    # The socket connection picks this session up to authenticate
    login_user(user, remember=True)
    return jsonify({'message': 'Logged in successfully.', 'user': user.to_dict()})


@main.route('/logout')
@login_required
def logout():
    logout_user()
    return jsonify({'message': 'Logged out successfully.'})


@main.route('/me')
@login_required
def me():
    """The current user and the games they joined."""
    payload = current_user.to_dict()
    payload['games'] = [
        {'game_id': gu.game_id, 'team_id': gu.team_id, 'roles': gu.state}
        for gu in GameUser.query.filter_by(user_id=current_user.id).all()
    ]
    return jsonify(payload)
