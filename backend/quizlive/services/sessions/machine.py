"""Live game session state machine.

States run ``waiting -> active -> finished``. Every mutating operation takes
the per-session lock, re-reads the session, validates, commits, and only then
publishes its event, so a failed call leaves the session as it was and no
event is sent for it. Reads (``snapshot``) never take the lock.
"""

import threading
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from quizlive import db
from quizlive.models import (
    GameSession, PlayerAnswer, PlayerSession, Quiz,
    SESSION_ACTIVE, SESSION_FINISHED, SESSION_WAITING,
)
from . import pins, scoring
from .errors import (
    AlreadyAnswered, Conflict, Expired, Forbidden, NameTaken, NotFound,
    SessionClosed, ValidationError,
)
from .fanout import answer_received, channel, game_finished, player_joined, question_started

_locks: Dict[int, threading.Lock] = {}
_locks_guard = threading.Lock()
# Serializes PIN draw + insert so two creates never pick the same free PIN
_pin_lock = threading.Lock()


def now() -> float:
    return time.time()


def _utcnow():
    return datetime.now(timezone.utc)


@contextmanager
def session_lock(session_id: int):
    with _locks_guard:
        lock = _locks.setdefault(session_id, threading.Lock())
    with lock:
        yield


def _release_lock(session_id: int) -> None:
    # Finished and missing sessions never mutate again, so their lock can go
    with _locks_guard:
        _locks.pop(session_id, None)


def _reload(session_id: int) -> GameSession:
    # Another writer may have committed since this db session last looked
    db.session.expire_all()
    session = db.session.get(GameSession, session_id)
    if not session or session.status == SESSION_FINISHED:
        _release_lock(session_id)
    if not session:
        raise NotFound('Game session not found', game_session_id=session_id)
    return session


def _commit(conflict: Optional[Exception] = None) -> None:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        if conflict is not None:
            raise conflict
        raise
    except Exception:
        db.session.rollback()
        raise


def _require_owner(session: GameSession, owner) -> None:
    if owner is None or not getattr(owner, 'is_authenticated', False) or owner.id != session.owner_id:
        raise Forbidden('Only the session owner may do this', game_session_id=session.id)


def _require_open(session: GameSession) -> None:
    if session.status == SESSION_FINISHED:
        raise SessionClosed('Game session is finished', game_session_id=session.id)


def _schedule(session_id: int) -> None:
    from .scheduler import schedule_question_timer
    schedule_question_timer(current_app._get_current_object(), session_id)


def clean_player_name(value, max_length: int = 20) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError('player_name is required', field='player_name')
    name = value.strip()
    if len(name) > max_length:
        raise ValidationError(f'player_name must be at most {max_length} characters', field='player_name')
    return name


def get_session(session_id: int) -> GameSession:
    session = db.session.get(GameSession, session_id)
    if not session:
        raise NotFound('Game session not found', game_session_id=session_id)
    return session


def get_player(session: GameSession, player_session_id) -> PlayerSession:
    player = db.session.get(PlayerSession, player_session_id) if isinstance(player_session_id, int) else None
    if not player or player.game_session_id != session.id:
        raise NotFound('Player not found in this game session', player_session_id=player_session_id)
    return player


def create_session(quiz: Optional[Quiz], owner) -> GameSession:
    """Open a waiting session for ``quiz`` with a freshly allocated PIN."""
    if quiz is None:
        raise NotFound('Quiz not found')
    if owner is None or not getattr(owner, 'is_authenticated', False) or quiz.owner_id != owner.id:
        raise Forbidden('Only the quiz owner may start a game', quiz_id=quiz.id)
    if not quiz.questions:
        raise Conflict('Quiz has no questions', quiz_id=quiz.id)

    attempts = int(current_app.config.get('PIN_ALLOCATION_ATTEMPTS', pins.DEFAULT_ATTEMPTS))
    with _pin_lock:
        pin = pins.allocate(attempts)
        session = GameSession(
            quiz_id=quiz.id,
            owner_id=owner.id,
            pin=pin,
            status=SESSION_WAITING,
            current_question=-1,
        )
        db.session.add(session)
        _commit(Conflict('PIN collision, please retry'))
    current_app.logger.info(f"[session-create] session={session.id} quiz={quiz.id} owner={owner.id} pin={pin}")
    return session


def join(pin, player_name) -> PlayerSession:
    if isinstance(pin, str):
        pin = pin.strip()
    if not pins.is_valid_pin(pin):
        raise ValidationError('PIN must be exactly 6 digits', field='pin')
    name = clean_player_name(player_name, int(current_app.config.get('PLAYER_NAME_MAX_LENGTH', 20)))

    found = pins.find_open_session(pin, statuses=(SESSION_WAITING,))
    if not found:
        raise NotFound('Game not found or already started', pin=pin)
    session_id = found.id

    with session_lock(session_id):
        session = _reload(session_id)
        if session.status != SESSION_WAITING or session.pin != pin:
            raise NotFound('Game not found or already started', pin=pin)
        taken = NameTaken('This name is already in use in this game', player_name=name)
        if any(p.player_name == name for p in session.players):
            raise taken
        player = PlayerSession(game_session_id=session.id, player_name=name, score=0)
        db.session.add(player)
        _commit(taken)
        current_app.logger.info(f"[join] session={session.id} player={player.id} name={name!r}")
        channel.publish(player_joined(session, player))
    return player


def _begin_question(session: GameSession, index: int):
    question = session.quiz.questions[index]
    started = now()
    session.current_question = index
    session.question_started_at = started
    session.question_deadline = started + question.time_limit
    return question


def start(session_id: int, owner) -> GameSession:
    with session_lock(session_id):
        session = _reload(session_id)
        _require_owner(session, owner)
        _require_open(session)
        if session.status != SESSION_WAITING:
            raise Conflict('Game already started', status=session.status)
        min_players = max(1, int(current_app.config.get('MIN_PLAYERS', 1)))
        if len(session.players) < min_players:
            raise Conflict(f'At least {min_players} player(s) must join before starting',
                           player_count=len(session.players))

        session.status = SESSION_ACTIVE
        session.started_at = _utcnow()
        _begin_question(session, 0)
        _commit()
        current_app.logger.info(
            f"[session-start] session={session.id} players={len(session.players)} deadline={session.question_deadline}"
        )
        channel.publish(question_started(session, session.current_question_obj))
    _schedule(session_id)
    return session


def submit_answer(session_id: int, player_session_id, option_index, client_time=None,
                  question_id=None) -> PlayerAnswer:
    """Score and store one answer to the current question.

    An answer past the deadline is not stored: it raises Expired whose
    ``answer`` detail holds the record it would have been (is_correct false,
    0 points). The server clock alone measures response time.
    """
    if isinstance(option_index, bool) or not isinstance(option_index, int):
        raise ValidationError('option_index must be an integer', field='option_index')
    if client_time is not None:
        if isinstance(client_time, bool) or not isinstance(client_time, (int, float)):
            raise ValidationError('client_time must be a number of milliseconds', field='client_time')
        client_time = int(client_time)

    with session_lock(session_id):
        session = _reload(session_id)
        _require_open(session)
        if session.status != SESSION_ACTIVE:
            raise Conflict('Game has not started', status=session.status)
        player = get_player(session, player_session_id)
        question = session.current_question_obj
        if question_id is not None and question_id != question.id:
            raise Expired('Question is no longer accepting answers', question_id=question_id)
        if not 0 <= option_index < len(question.options):
            raise ValidationError('option_index out of range', field='option_index')
        duplicate = AlreadyAnswered('Answer already submitted for this question', question_id=question.id)
        if player.has_answered(question.id):
            raise duplicate

        response_time_ms = scoring.round_half_up((now() - session.question_started_at) * 1000)
        if response_time_ms > question.time_limit_ms:
            current_app.logger.info(
                f"[answer-late] session={session.id} player={player.id} question={question.id} rt={response_time_ms}ms"
            )
            raise Expired('Answer submitted after the deadline', answer={
                'question_id': question.id,
                'selected_answer': option_index,
                'is_correct': False,
                'points_earned': 0,
                'response_time': response_time_ms,
            })

        is_correct, points = scoring.score(question, option_index, response_time_ms, question.time_limit_ms)
        answer = PlayerAnswer(
            player_session_id=player.id,
            question_id=question.id,
            question_index=session.current_question,
            selected_answer=option_index,
            is_correct=is_correct,
            points_earned=points,
            response_time=response_time_ms,
            client_time=client_time,
        )
        player.score = (player.score or 0) + points
        db.session.add(answer)
        _commit(duplicate)
        current_app.logger.info(
            f"[answer] session={session.id} player={player.id} question={question.id} "
            f"correct={is_correct} points={points} rt={response_time_ms}ms"
        )
        channel.publish(answer_received(session, player, answer))
    return answer


def build_summary(session: GameSession) -> Dict[str, Any]:
    """Final results; derivable from stored state alone."""
    completed = session.current_question >= session.question_count
    return {
        'reason': 'completed' if completed else 'ended',
        'leaderboard': scoring.leaderboard(session.players),
        'stats': scoring.game_stats(session),
    }


def _finish(session: GameSession, completed: bool) -> None:
    session.status = SESSION_FINISHED
    session.finished_at = _utcnow()
    session.question_started_at = None
    session.question_deadline = None
    if completed:
        session.current_question = session.question_count


def advance(session_id: int, owner=None, expected_index: Optional[int] = None,
            by_timer: bool = False) -> GameSession:
    """Move to the next question, or finish after the last one.

    ``expected_index`` pins the call to the question the caller saw, so a
    retried owner request or a timer that lost the race gets a Conflict
    instead of skipping a question. Only the deadline timer passes
    ``by_timer=True``; every other caller must be the owner.
    """
    with session_lock(session_id):
        session = _reload(session_id)
        if not by_timer:
            _require_owner(session, owner)
        _require_open(session)
        if session.status != SESSION_ACTIVE:
            raise Conflict('Game is not in progress', status=session.status)
        if expected_index is not None and session.current_question != expected_index:
            raise Conflict('Question already advanced', current_question=session.current_question)

        previous = session.current_question
        next_index = previous + 1
        if next_index < session.question_count:
            _begin_question(session, next_index)
            _commit()
            current_app.logger.info(
                f"[advance] session={session.id} question {previous} -> {next_index} deadline={session.question_deadline}"
            )
            channel.publish(question_started(session, session.current_question_obj))
        else:
            _finish(session, completed=True)
            _commit()
            current_app.logger.info(f"[finish] session={session.id} finished after question={previous}")
            channel.publish(game_finished(session, build_summary(session)))
        still_active = session.status == SESSION_ACTIVE
    if still_active:
        _schedule(session_id)
    else:
        _release_lock(session_id)
    return session


def end(session_id: int, owner) -> GameSession:
    """Owner cancel: finish immediately from waiting or active."""
    with session_lock(session_id):
        session = _reload(session_id)
        _require_owner(session, owner)
        _require_open(session)
        previous_status = session.status
        _finish(session, completed=False)
        _commit()
        current_app.logger.info(f"[end] session={session.id} ended from status={previous_status}")
        channel.publish(game_finished(session, build_summary(session)))
    _release_lock(session_id)
    return session


def snapshot(session: GameSession, viewer_is_owner: bool = False) -> Dict[str, Any]:
    """Everything a client needs to re-render; every event can be rebuilt from it."""
    question = session.current_question_obj
    data = session.to_dict()
    data['server_time'] = now()
    data['question_started_at'] = session.question_started_at
    data['quiz'] = {
        'id': session.quiz.id,
        'title': session.quiz.title,
        'question_count': session.question_count,
    }
    data['question'] = question.to_dict(include_answer=viewer_is_owner) if question else None
    data['players'] = [
        {
            'id': p.id,
            'player_name': p.player_name,
            'score': p.score,
            'has_answered_current': bool(question and p.has_answered(question.id)),
        }
        for p in session.players
    ]
    data['leaderboard'] = scoring.leaderboard(session.players)
    if viewer_is_owner and question:
        data['answered_count'] = sum(1 for p in data['players'] if p['has_answered_current'])
    if session.status == SESSION_FINISHED:
        data['summary'] = build_summary(session)
    return data
