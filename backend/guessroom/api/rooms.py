from flask import Blueprint, jsonify, request, current_app
from guessroom.services.rooms import RoomError, get_room_manager


rooms = Blueprint('rooms', __name__)


@rooms.errorhandler(RoomError)
def handle_room_error(exc):
    current_app.logger.info(f"[rejected] {request.method} {request.path} kind={exc.kind} message={exc}")
    return jsonify(exc.to_dict()), exc.status_code


def _require(data, *fields):
    missing = [f for f in fields if data.get(f) in (None, '')]
    if missing:
        return jsonify({'error': 'InvalidPayload', 'message': f"Missing: {', '.join(missing)}"}), 400
    return None


@rooms.route('', methods=['GET'])
def list_rooms():
    include_finished = request.args.get('include_finished') == '1'
    return jsonify(get_room_manager().list_rooms(include_finished=include_finished))


@rooms.route('/create', methods=['POST'])
def create_room():
    data = request.get_json(silent=True) or {}
    settings = data.get('settings') or {}
    if not isinstance(settings, dict):
        return jsonify({'error': 'InvalidPayload', 'message': 'settings must be an object'}), 400
    snapshot = get_room_manager().create_room(name=data.get('name', ''), settings=settings)
    current_app.logger.info(f"[create] room={snapshot['id']}")
    return jsonify(snapshot), 201


@rooms.route('/<string:room_id>/state', methods=['GET'])
def get_room_state(room_id):
    viewer_id = request.args.get('player_id')
    return jsonify(get_room_manager().snapshot(room_id, viewer_id=viewer_id))


@rooms.route('/<string:room_id>/join', methods=['POST'])
def join_room(room_id):
    data = request.get_json(silent=True) or {}
    error = _require(data, 'player_id')
    if error:
        return error
    player = get_room_manager().join(room_id, str(data['player_id']), data.get('display_name'))
    return jsonify(player.to_dict()), 201


@rooms.route('/<string:room_id>/leave', methods=['POST'])
def leave_room(room_id):
    data = request.get_json(silent=True) or {}
    error = _require(data, 'player_id')
    if error:
        return error
    player = get_room_manager().leave(room_id, str(data['player_id']))
    return jsonify(player.to_dict())


@rooms.route('/<string:room_id>/start', methods=['POST'])
def start_game(room_id):
    data = request.get_json(silent=True) or {}
    error = _require(data, 'player_id')
    if error:
        return error
    return jsonify(get_room_manager().start_game(room_id, requested_by=str(data['player_id'])))


@rooms.route('/<string:room_id>/guess', methods=['POST'])
def submit_guess(room_id):
    data = request.get_json(silent=True) or {}
    error = _require(data, 'player_id', 'round_index')
    if error:
        return error
    guess = get_room_manager().submit_guess(
        room_id, str(data['player_id']), data['round_index'], str(data.get('text') or '')
    )
    return jsonify(guess.to_dict())


@rooms.route('/<string:room_id>/leaderboard', methods=['GET'])
def get_leaderboard(room_id):
    board = get_room_manager().leaderboard(room_id, visible_only=True)
    if board is None:
        return jsonify({'room_id': room_id, 'leaderboard': [], 'hidden': True})
    return jsonify({'room_id': room_id, 'leaderboard': board, 'hidden': False})


@rooms.route('/<string:room_id>/settings', methods=['POST'])
def update_settings(room_id):
    data = request.get_json(silent=True) or {}
    error = _require(data, 'player_id')
    if error:
        return error
    changes = data.get('settings') or {}
    if not isinstance(changes, dict):
        return jsonify({'error': 'InvalidPayload', 'message': 'settings must be an object'}), 400
    settings = get_room_manager().update_settings(room_id, str(data['player_id']), changes)
    return jsonify(settings.to_dict())


@rooms.route('/<string:room_id>/kick', methods=['POST'])
def kick_player(room_id):
    data = request.get_json(silent=True) or {}
    error = _require(data, 'player_id', 'target_id')
    if error:
        return error
    player = get_room_manager().kick(room_id, str(data['player_id']), str(data['target_id']))
    return jsonify(player.to_dict())


@rooms.route('/<string:room_id>/host', methods=['POST'])
def transfer_host(room_id):
    data = request.get_json(silent=True) or {}
    error = _require(data, 'player_id', 'target_id')
    if error:
        return error
    get_room_manager().transfer_host(room_id, str(data['player_id']), str(data['target_id']))
    return jsonify({'ok': True, 'host_id': str(data['target_id'])})


@rooms.route('/<string:room_id>/chat', methods=['POST'])
def post_chat(room_id):
    data = request.get_json(silent=True) or {}
    error = _require(data, 'player_id', 'text')
    if error:
        return error
    message = get_room_manager().post_chat(room_id, str(data['player_id']), str(data['text']))
    return jsonify(message or {}), 201


@rooms.route('/<string:room_id>/cancel', methods=['POST'])
def cancel_room(room_id):
    data = request.get_json(silent=True) or {}
    error = _require(data, 'player_id')
    if error:
        return error
    get_room_manager().cancel_room(room_id, reason='host_abandoned', requested_by=str(data['player_id']))
    return jsonify({'ok': True})
