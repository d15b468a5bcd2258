from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user
from quizlive import db
from quizlive.models import Quiz
from quizlive.services.sessions import machine, scoring
from quizlive.services.sessions.errors import Forbidden, SessionError, ValidationError, error_payload

sessions = Blueprint('sessions', __name__)


@sessions.errorhandler(SessionError)
def handle_session_error(exc):
    body, status = error_payload(exc)
    return jsonify(body), status


def _viewer_is_owner(game) -> bool:
    return bool(current_user.is_authenticated and current_user.id == game.owner_id)


@sessions.route('', methods=['POST'])
@login_required
def create_session():
    data = request.get_json(silent=True) or {}
    quiz_id = data.get('quiz_id')
    if isinstance(quiz_id, bool) or not isinstance(quiz_id, int):
        raise ValidationError('quiz_id is required', field='quiz_id')
    game = machine.create_session(db.session.get(Quiz, quiz_id), current_user)
    return jsonify(machine.snapshot(game, viewer_is_owner=True)), 201


@sessions.route('/join', methods=['POST'])
def join_session():
    data = request.get_json(silent=True) or {}
    player = machine.join(data.get('pin'), data.get('player_name'))
    return jsonify(player.to_dict()), 201


@sessions.route('/<int:session_id>/state', methods=['GET'])
def get_session_state(session_id):
    game = machine.get_session(session_id)
    return jsonify(machine.snapshot(game, viewer_is_owner=_viewer_is_owner(game)))


@sessions.route('/<int:session_id>/start', methods=['POST'])
@login_required
def start_session(session_id):
    game = machine.start(session_id, current_user)
    return jsonify(machine.snapshot(game, viewer_is_owner=True))


@sessions.route('/<int:session_id>/advance', methods=['POST'])
@login_required
def advance_session(session_id):
    data = request.get_json(silent=True) or {}
    expected = data.get('question_index')
    if expected is not None and (isinstance(expected, bool) or not isinstance(expected, int)):
        raise ValidationError('question_index must be an integer', field='question_index')
    game = machine.advance(session_id, owner=current_user, expected_index=expected)
    return jsonify(machine.snapshot(game, viewer_is_owner=True))


@sessions.route('/<int:session_id>/end', methods=['POST'])
@login_required
def end_session(session_id):
    game = machine.end(session_id, current_user)
    return jsonify(machine.snapshot(game, viewer_is_owner=True))


@sessions.route('/<int:session_id>/answers', methods=['POST'])
def submit_answer(session_id):
    data = request.get_json(silent=True) or {}
    answer = machine.submit_answer(
        session_id,
        data.get('player_session_id'),
        data.get('option_index'),
        client_time=data.get('client_time'),
        question_id=data.get('question_id'),
    )
    return jsonify(answer.to_dict()), 201


@sessions.route('/<int:session_id>/players/<int:player_session_id>', methods=['GET'])
def get_player(session_id, player_session_id):
    game = machine.get_session(session_id)
    player = machine.get_player(game, player_session_id)
    return jsonify(player.to_dict(include_answers=True))


@sessions.route('/<int:session_id>/stats', methods=['GET'])
@login_required
def get_session_stats(session_id):
    game = machine.get_session(session_id)
    if not _viewer_is_owner(game):
        raise Forbidden('Only the session owner may view statistics', game_session_id=game.id)
    payload = scoring.game_stats(game)
    payload['leaderboard'] = scoring.leaderboard(game.players)
    return jsonify(payload)
