from flask import Blueprint, current_app, jsonify, request

from kaputi.services.games.errors import GameError

rooms = Blueprint('rooms', __name__)

STATUS_BY_CATEGORY = {
    'validation': 400,
    'authorization': 403,
    'not_found': 404,
    'capacity': 409,
    'transport': 503,
}


def _registry():
    return current_app.extensions['room_registry']


@rooms.app_errorhandler(GameError)
def handle_game_error(err):
    return jsonify({'error': err.message, 'code': err.code, 'category': err.category}), \
        STATUS_BY_CATEGORY.get(err.category, 400)


@rooms.route('/rooms', methods=['POST'])
def create_room():
    data = request.get_json(silent=True) or {}
    session, host = _registry().create_room(data.get('name'))
    current_app.logger.info(f"[http-create] room={session.code} host={host.id}")
    return jsonify({
        'message': 'New room created!',
        'room_code': session.code,
        'player_id': host.id,
        'player': host.to_dict(host.id),
        'state': session.snapshot(),
    }), 201


@rooms.route('/rooms/join', methods=['POST'])
def join_room():
    data = request.get_json(silent=True) or {}
    player_id = data.get('player_id')
    session, player, snapshot = _registry().join_room(data.get('room_code'), data.get('name'), player_id=player_id)
    rejoined = bool(player_id) and player_id == player.id
    return jsonify({
        'room_code': session.code,
        'player_id': player.id,
        'player': player.to_dict(snapshot['host_id']),
        'state': snapshot,
    }), 200 if rejoined else 201


@rooms.route('/rooms/stats', methods=['GET'])
def room_stats():
    return jsonify(_registry().stats())


@rooms.route('/rooms/<string:room_code>/state', methods=['GET'])
def get_room_state(room_code):
    # Includes durations so clients can label countdowns
    payload = _registry().get(room_code).snapshot()
    cfg = current_app.config
    payload['durations'] = {
        'selecting-topic': int(cfg.get('TOPIC_SELECT_DURATION_SEC', 20)),
        'playing': int(cfg.get('TURN_DURATION_SEC', 60)),
        'voting': int(cfg.get('VOTE_DURATION_SEC', 30)),
        'resolved': int(cfg.get('TURN_END_GRACE_SEC', 5)),
    }
    return jsonify(payload)


@rooms.route('/topics', methods=['GET'])
def list_topics():
    return jsonify({'topics': _registry().cards.topics()})
