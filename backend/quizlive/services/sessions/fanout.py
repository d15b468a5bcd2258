"""Realtime fan-out of session events.

Every event is published twice: to the Socket.IO rooms of the session (the
external transport) and to in-process ``Subscription`` handles. Delivery is
fire-and-forget; subscribers that miss events resynchronise by fetching a
fresh snapshot rather than replaying a log.
"""

import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from flask import current_app

from quizlive import socketio

NAMESPACE = '/ws'

PLAYER_JOINED = 'player_joined'
QUESTION_STARTED = 'question_started'
ANSWER_RECEIVED = 'answer_received'
GAME_FINISHED = 'game_finished'


def session_room(session_id: int) -> str:
    return f"session:{session_id}"


def host_room(session_id: int) -> str:
    return f"session:{session_id}:host"


@dataclass
class Event:
    name: str
    session_id: int
    payload: Dict[str, Any] = field(default_factory=dict)
    # Private events reach the session owner only
    private: bool = False
    emitted_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        data = {'event': self.name, 'game_session_id': self.session_id, 'emitted_at': self.emitted_at}
        data.update(self.payload)
        return data


def player_joined(session, player) -> Event:
    return Event(PLAYER_JOINED, session.id, {
        'player': player.to_dict(),
        'player_count': len(session.players),
    })


def question_started(session, question) -> Event:
    return Event(QUESTION_STARTED, session.id, {
        'question_index': session.current_question,
        'question_count': session.question_count,
        'question': question.to_dict(include_answer=False),
        'started_at': session.question_started_at,
        'deadline': session.question_deadline,
    })


def answer_received(session, player, answer) -> Event:
    answered = sum(1 for p in session.players if p.has_answered(answer.question_id))
    return Event(ANSWER_RECEIVED, session.id, {
        'player_session_id': player.id,
        'player_name': player.player_name,
        'answer': answer.to_dict(),
        'answered_count': answered,
        'player_count': len(session.players),
    }, private=True)


def game_finished(session, summary: Dict[str, Any]) -> Event:
    return Event(GAME_FINISHED, session.id, {'summary': summary})


_CLOSED = object()


class Subscription:
    """Handle on one session's event stream.

    Iterating blocks until the next event and stops once the handle is
    closed. Use as a context manager so the handle is always released.
    """

    def __init__(self, channel: 'FanoutChannel', session_id: int, include_private: bool = False) -> None:
        self.channel = channel
        self.session_id = session_id
        self.include_private = include_private
        self.closed = False
        self._queue: 'queue.Queue[Any]' = queue.Queue()

    def deliver(self, event: Event) -> None:
        if self.closed:
            return
        if event.private and not self.include_private:
            return
        self._queue.put(event)

    def get(self, timeout: Optional[float] = None) -> Optional[Event]:
        """Next event, or None on timeout or once closed."""
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _CLOSED:
            return None
        return item

    def drain(self) -> List[Event]:
        events = []
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return events
            if item is not _CLOSED:
                events.append(item)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.channel.unsubscribe(self)
        self._queue.put(_CLOSED)

    def __iter__(self):
        while True:
            item = self._queue.get()
            if item is _CLOSED:
                return
            yield item

    def __enter__(self) -> 'Subscription':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class FanoutChannel:
    def __init__(self, sio=None, namespace: str = NAMESPACE) -> None:
        self.sio = sio
        self.namespace = namespace
        self._subscribers: Dict[int, List[Subscription]] = {}
        self._lock = threading.Lock()

    def subscribe(self, session_id: int, include_private: bool = False) -> Subscription:
        sub = Subscription(self, session_id, include_private=include_private)
        with self._lock:
            self._subscribers.setdefault(session_id, []).append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            subs = self._subscribers.get(sub.session_id, [])
            if sub in subs:
                subs.remove(sub)
            if not subs:
                self._subscribers.pop(sub.session_id, None)

    def subscriber_count(self, session_id: int) -> int:
        with self._lock:
            return len(self._subscribers.get(session_id, []))

    def publish(self, event: Event) -> None:
        with self._lock:
            subs = list(self._subscribers.get(event.session_id, []))
        for sub in subs:
            sub.deliver(event)
        if self.sio is None:
            return
        room = host_room(event.session_id) if event.private else session_room(event.session_id)
        try:
            self.sio.emit(event.name, event.to_dict(), to=room, namespace=self.namespace)
        except Exception as exc:
            current_app.logger.warning(
                f"[fanout-failed] session={event.session_id} event={event.name} error={exc}"
            )


channel = FanoutChannel(socketio)
