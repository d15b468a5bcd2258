import os
import sys
import pytest
from flask import g

# Ensure the backend root (containing the `quizlive` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from quizlive import create_app, db, socketio
from quizlive.models import Quiz, Question, User
from quizlive.services.sessions import machine, scheduler


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    BCRYPT_LOG_ROUNDS = 4
    LOG_LEVEL = 'DEBUG'
    CORS_ORIGINS = []
    MIN_PLAYERS = 1
    PLAYER_NAME_MAX_LENGTH = 20
    PIN_ALLOCATION_ATTEMPTS = 50
    AUTO_ADVANCE = True
    AUTO_ADVANCE_GRACE_SEC = 1.0


class FakeClock:
    """Stands in for machine.now(); tests move time explicitly."""

    def __init__(self, start=1_700_000_000.0):
        self.t = start

    def __call__(self):
        return self.t

    def advance(self, seconds):
        self.t += seconds


@pytest.fixture(autouse=True)
def _reset_timers():
    scheduler._scheduled_question_keys.clear()
    yield
    scheduler._scheduled_question_keys.clear()


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)

    # Requests reuse the fixture's app context, so g would keep the last logged-in user
    @application.teardown_request
    def _forget_login_user(exc):
        g.pop('_login_user', None)

    with application.app_context():
        # Ensure models are imported so tables are created
        import quizlive.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def clock(monkeypatch):
    fake = FakeClock()
    monkeypatch.setattr(machine, 'now', fake)
    return fake


def _make_user(email, role='teacher'):
    user = User(email=email, full_name=email.split('@')[0].title(), role=role)
    user.set_password('password')
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture()
def teacher(flask_app):
    return _make_user('teacher@example.com')


@pytest.fixture()
def other_teacher(flask_app):
    return _make_user('other@example.com')


def default_questions():
    return [
        {'question_text': 'Capital of France?', 'options': ['Berlin', 'Madrid', 'Paris', 'Rome'],
         'correct_answer': 2, 'time_limit': 30, 'points': 100},
        {'question_text': 'Water boils at 100C at sea level.', 'question_type': 'true_false',
         'options': ['True', 'False'], 'correct_answer': 0, 'time_limit': 20, 'points': 200},
        {'question_text': 'Largest planet?', 'options': ['Mars', 'Jupiter', 'Venus'],
         'correct_answer': 1, 'time_limit': 10, 'points': 50},
    ]


@pytest.fixture()
def make_quiz(flask_app):
    def _make(owner, questions=None, title='General knowledge'):
        quiz = Quiz(title=title, description='', owner_id=owner.id)
        rows = default_questions() if questions is None else questions
        quiz.questions = [
            Question(
                position=i,
                question_text=q['question_text'],
                question_type=q.get('question_type', 'multiple_choice'),
                options=q['options'],
                correct_answer=q['correct_answer'],
                time_limit=q.get('time_limit', 30),
                points=q.get('points', 100),
            )
            for i, q in enumerate(rows)
        ]
        db.session.add(quiz)
        db.session.commit()
        return quiz
    return _make


def login(test_client, email='teacher@example.com', password='password'):
    res = test_client.post('/auth/login', json={'email': email, 'password': password})
    assert res.status_code == 200
    return res.get_json()


@pytest.fixture()
def owner_client(flask_app, teacher):
    test_client = flask_app.test_client()
    login(test_client)
    return test_client


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    if test_client.is_connected('/ws'):
        test_client.disconnect(namespace='/ws')
