import time
from typing import Set, Tuple

from quizlive import db, socketio
from quizlive.models import GameSession, SESSION_ACTIVE
from .errors import SessionError


_scheduled_question_keys: Set[Tuple[int, int]] = set()


def _timers_enabled(app) -> bool:
    if not app.config.get('AUTO_ADVANCE', True):
        return False
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return False
    return True


def schedule_question_timer(app, session_id: int) -> bool:
    """Arm auto-advance for the current question of the given session.

    - No-ops when AUTO_ADVANCE is off, and in TESTING unless enabled
    - Reads the persisted question_deadline, so a restarted process re-arms
      the same deadline instead of granting a fresh time limit
    - Ensures a single timer per (session_id, question_index)
    """
    if not _timers_enabled(app):
        return False

    with app.app_context():
        session = db.session.get(GameSession, session_id)
        if not session or session.status != SESSION_ACTIVE or session.question_deadline is None:
            return False
        question_index = int(session.current_question)
        deadline = float(session.question_deadline)

    key = (session_id, question_index)
    if key in _scheduled_question_keys:
        app.logger.info(f"[timer-skip] session={session_id} question={question_index} already scheduled")
        return False
    _scheduled_question_keys.add(key)

    grace = float(app.config.get('AUTO_ADVANCE_GRACE_SEC', 1.0))
    fire_at = deadline + grace
    app.logger.info(f"[timer-set] session={session_id} question={question_index} deadline={deadline} fire_at={fire_at}")
    socketio.start_background_task(_worker, app, session_id, question_index, fire_at)
    return True


def _worker(app, session_id: int, question_index: int, fire_at: float) -> None:
    hb = int(app.config.get('TIMER_HEARTBEAT_SEC', 0) or 0)
    remaining = fire_at - time.time()
    while remaining > 0:
        step = min(hb, remaining) if hb > 0 else remaining
        socketio.sleep(step)
        remaining = fire_at - time.time()
        if hb > 0 and remaining > 0:
            app.logger.info(f"[timer-heartbeat] session={session_id} question={question_index} remaining={remaining:.1f}s")
    fire_deadline(app, session_id, question_index)


def fire_deadline(app, session_id: int, question_index: int) -> bool:
    """Advance ``session_id`` past ``question_index`` if it is still current.

    Returns True when the session moved; a timer that lost to a manual
    advance or an end is logged and ignored.
    """
    _scheduled_question_keys.discard((session_id, question_index))
    from . import machine
    with app.app_context():
        app.logger.info(f"[timer-fire] session={session_id} expected_question={question_index}")
        try:
            machine.advance(session_id, expected_index=question_index, by_timer=True)
        except SessionError as exc:
            app.logger.info(f"[timer-abort] session={session_id} question={question_index} reason={exc.code}: {exc.message}")
            return False
    return True


def _active_sessions():
    return GameSession.query.filter(
        GameSession.status == SESSION_ACTIVE,
        GameSession.question_deadline.isnot(None),
    ).all()


def resume_timers(app) -> int:
    """Re-arm timers for every active session from their stored deadlines."""
    with app.app_context():
        ids = [s.id for s in _active_sessions()]
    armed = sum(1 for sid in ids if schedule_question_timer(app, sid))
    app.logger.info(f"[timer-resume] active={len(ids)} armed={armed}")
    return armed


def advance_overdue(app) -> int:
    """Synchronously advance every active session whose deadline (plus grace) passed."""
    from . import machine
    grace = float(app.config.get('AUTO_ADVANCE_GRACE_SEC', 1.0))
    with app.app_context():
        overdue = [
            (s.id, int(s.current_question))
            for s in _active_sessions()
            if s.question_deadline + grace <= machine.now()
        ]
    return sum(1 for sid, idx in overdue if fire_deadline(app, sid, idx))
