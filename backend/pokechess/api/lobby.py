from flask import Blueprint, jsonify, request, current_app
from sqlalchemy.exc import SQLAlchemyError
from pokechess import db, lobby
from pokechess.services import rating

api = Blueprint('api', __name__)

MAX_LEADERBOARD = 100


@api.route('/health', methods=['GET'])
def health():
    return jsonify({'status': 'ok'})


@api.route('/rooms', methods=['GET'])
def list_rooms():
    """Human rooms with somebody seated; computer rooms stay private."""
    return jsonify({'rooms': lobby.registry.list_active()})


@api.route('/leaderboard', methods=['GET'])
def leaderboard():
    default_limit = int(current_app.config.get('LEADERBOARD_LIMIT', 20))
    limit = request.args.get('limit', default_limit, type=int)
    limit = max(1, min(limit or default_limit, MAX_LEADERBOARD))
    try:
        accounts = rating.top_n(limit)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception('[leaderboard-fail]')
        return jsonify({'error': 'Failed to fetch leaderboard'}), 500
    return jsonify({'leaderboard': [a.to_dict() for a in accounts]})
