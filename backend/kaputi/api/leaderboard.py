from flask import Blueprint, current_app, jsonify, request

from kaputi.services.games.leaderboard import MAX_ENTRIES

leaderboard = Blueprint('leaderboard', __name__)


@leaderboard.route('/leaderboard', methods=['GET'])
def top_scores():
    try:
        limit = int(request.args.get('limit', 10))
    except ValueError:
        return jsonify({'error': 'limit must be an integer', 'code': 'BadRequest'}), 400
    limit = max(1, min(limit, MAX_ENTRIES))
    sink = current_app.extensions['room_registry'].leaderboard
    return jsonify({'entries': sink.top(limit)})
