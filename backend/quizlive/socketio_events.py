from flask import current_app, request
from flask_login import current_user
from flask_socketio import join_room, leave_room, emit
from typing import Any, Dict, Optional

from quizlive import socketio
from quizlive.services.sessions import machine
from quizlive.services.sessions.errors import SessionError, ValidationError
from quizlive.services.sessions.fanout import NAMESPACE, host_room, session_room

# sid -> {'game_session_id': int, 'is_owner': bool}
_sid_to_ctx: Dict[str, Dict[str, Any]] = {}


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _session_id_from(data) -> int:
    value = (data or {}).get('session_id')
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError('session_id is required', field='session_id')
    return value


def _is_owner(session) -> bool:
    return bool(current_user and current_user.is_authenticated and current_user.id == session.owner_id)


def _emit_error(exc: SessionError) -> None:
    emit('error', exc.to_dict())


def _emit_snapshot(session, is_owner: bool) -> None:
    emit('session_state', machine.snapshot(session, viewer_is_owner=is_owner))


def handle_connect():
    emit('connected', {'message': f'Connected to {NAMESPACE}'})


def handle_disconnect(reason: Optional[str] = None):
    ctx = _sid_to_ctx.pop(_get_sid(), None)
    if ctx:
        current_app.logger.info(
            f"[ws-disconnect] session={ctx['game_session_id']} owner={ctx['is_owner']} reason={reason}"
        )


def handle_subscribe_session(data):
    """Join the broadcast room (and the owner room for the owner), then send a snapshot."""
    try:
        session_id = _session_id_from(data)
        session = machine.get_session(session_id)
    except SessionError as exc:
        _emit_error(exc)
        return
    is_owner = _is_owner(session)
    join_room(session_room(session.id))
    if is_owner:
        join_room(host_room(session.id))
    _sid_to_ctx[_get_sid()] = {'game_session_id': session.id, 'is_owner': is_owner}
    emit('subscribed', {'room': session_room(session.id), 'is_owner': is_owner})
    _emit_snapshot(session, is_owner)


def handle_unsubscribe_session(data):
    try:
        session_id = _session_id_from(data)
    except SessionError as exc:
        _emit_error(exc)
        return
    leave_room(session_room(session_id))
    leave_room(host_room(session_id))
    _sid_to_ctx.pop(_get_sid(), None)
    emit('unsubscribed', {'room': session_room(session_id)})


def handle_sync_session(data):
    """Resynchronise after a reconnect or a missed event."""
    try:
        session = machine.get_session(_session_id_from(data))
    except SessionError as exc:
        _emit_error(exc)
        return
    _emit_snapshot(session, _is_owner(session))


def handle_submit_answer(data):
    data = data or {}
    try:
        answer = machine.submit_answer(
            _session_id_from(data),
            data.get('player_session_id'),
            data.get('option_index'),
            client_time=data.get('client_time'),
            question_id=data.get('question_id'),
        )
    except SessionError as exc:
        _emit_error(exc)
        return
    emit('answer_accepted', answer.to_dict())


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on the '/ws' namespace."""
    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=NAMESPACE)
    socketio.on_event('subscribe_session', handle_subscribe_session, namespace=NAMESPACE)
    socketio.on_event('unsubscribe_session', handle_unsubscribe_session, namespace=NAMESPACE)
    socketio.on_event('sync_session', handle_sync_session, namespace=NAMESPACE)
    socketio.on_event('submit_answer', handle_submit_answer, namespace=NAMESPACE)
    socketio.on_event('ping', handle_ping, namespace=NAMESPACE)
