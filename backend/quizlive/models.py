from quizlive import db, bcrypt
from flask_login import UserMixin
from datetime import datetime, timezone


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


SESSION_WAITING = 'waiting'
SESSION_ACTIVE = 'active'
SESSION_FINISHED = 'finished'
OPEN_SESSION_STATUSES = (SESSION_WAITING, SESSION_ACTIVE)

QUESTION_TYPES = ('multiple_choice', 'true_false')


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    full_name = db.Column(db.String(120), nullable=False, default='')
    role = db.Column(db.String(16), nullable=False, default='teacher')  # teacher, student
    password_hash = db.Column(db.String(256), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    quizzes = db.relationship('Quiz', back_populates='owner', lazy='dynamic')

    @property
    def is_teacher(self):
        return self.role == 'teacher'

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'full_name': self.full_name,
            'role': self.role,
            'created_at': _iso(self.created_at),
        }


class Quiz(db.Model):
    __tablename__ = 'quiz'
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False, default='')
    owner_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    owner = db.relationship('User', back_populates='quizzes')
    questions = db.relationship(
        'Question', back_populates='quiz', order_by='Question.position',
        cascade='all, delete-orphan',
    )
    sessions = db.relationship('GameSession', back_populates='quiz', cascade='all, delete-orphan')

    def has_open_session(self):
        return GameSession.query.filter(
            GameSession.quiz_id == self.id,
            GameSession.status.in_(OPEN_SESSION_STATUSES),
        ).first() is not None

    def to_dict(self, include_questions=True):
        data = {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'created_by': self.owner_id,
            'created_at': _iso(self.created_at),
            'question_count': len(self.questions),
        }
        if include_questions:
            data['questions'] = [q.to_dict() for q in self.questions]
        return data


class Question(db.Model):
    __tablename__ = 'question'
    id = db.Column(db.Integer, primary_key=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey('quiz.id'), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)
    question_text = db.Column(db.Text, nullable=False)
    question_type = db.Column(db.String(32), nullable=False, default='multiple_choice')
    options = db.Column(db.JSON, nullable=False)
    correct_answer = db.Column(db.Integer, nullable=False)
    time_limit = db.Column(db.Integer, nullable=False, default=30)  # seconds
    points = db.Column(db.Integer, nullable=False, default=100)
    image_url = db.Column(db.String(512), nullable=True)
    video_url = db.Column(db.String(512), nullable=True)

    quiz = db.relationship('Quiz', back_populates='questions')

    @property
    def time_limit_ms(self):
        return int(self.time_limit) * 1000

    def to_dict(self, include_answer=True):
        data = {
            'id': self.id,
            'quiz_id': self.quiz_id,
            'position': self.position,
            'question_text': self.question_text,
            'question_type': self.question_type,
            'options': list(self.options or []),
            'time_limit': self.time_limit,
            'points': self.points,
            'image_url': self.image_url,
            'video_url': self.video_url,
        }
        if include_answer:
            data['correct_answer'] = self.correct_answer
        return data


class GameSession(db.Model):
    __tablename__ = 'game_session'
    id = db.Column(db.Integer, primary_key=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey('quiz.id'), nullable=False, index=True)
    owner_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    pin = db.Column(db.String(6), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=SESSION_WAITING)  # waiting, active, finished
    current_question = db.Column(db.Integer, nullable=False, default=-1)
    # Epoch seconds, persisted so deadline timers can be re-armed after a restart
    question_started_at = db.Column(db.Float, nullable=True)
    question_deadline = db.Column(db.Float, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    finished_at = db.Column(db.DateTime(timezone=True), nullable=True)

    quiz = db.relationship('Quiz', back_populates='sessions')
    owner = db.relationship('User')
    players = db.relationship(
        'PlayerSession', back_populates='game_session',
        order_by='PlayerSession.id',
        cascade='all, delete-orphan',
    )

    # A PIN is only reserved while its session is waiting or active
    __table_args__ = (
        db.Index(
            'uq_game_session_open_pin', 'pin', unique=True,
            sqlite_where=db.text("status != 'finished'"),
            postgresql_where=db.text("status != 'finished'"),
        ),
    )

    @property
    def question_count(self):
        return len(self.quiz.questions)

    @property
    def current_question_obj(self):
        if self.status != SESSION_ACTIVE:
            return None
        questions = self.quiz.questions
        if 0 <= self.current_question < len(questions):
            return questions[self.current_question]
        return None

    def to_dict(self):
        return {
            'id': self.id,
            'quiz_id': self.quiz_id,
            'pin': self.pin,
            'status': self.status,
            'current_question': self.current_question,
            'created_by': self.owner_id,
            'created_at': _iso(self.created_at),
            'started_at': _iso(self.started_at),
            'finished_at': _iso(self.finished_at),
            'question_deadline': self.question_deadline,
        }


class PlayerSession(db.Model):
    __tablename__ = 'player_session'
    id = db.Column(db.Integer, primary_key=True)
    game_session_id = db.Column(db.Integer, db.ForeignKey('game_session.id'), nullable=False, index=True)
    player_name = db.Column(db.String(64), nullable=False)
    score = db.Column(db.Integer, nullable=False, default=0)
    joined_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    game_session = db.relationship('GameSession', back_populates='players')
    answers = db.relationship(
        'PlayerAnswer', back_populates='player_session',
        order_by='PlayerAnswer.question_index',
        cascade='all, delete-orphan',
    )

    __table_args__ = (
        db.UniqueConstraint('game_session_id', 'player_name', name='uq_player_session_name'),
    )

    def has_answered(self, question_id):
        return any(a.question_id == question_id for a in self.answers)

    def to_dict(self, include_answers=False):
        data = {
            'id': self.id,
            'game_session_id': self.game_session_id,
            'player_name': self.player_name,
            'score': self.score,
            'joined_at': _iso(self.joined_at),
        }
        if include_answers:
            data['answers'] = [a.to_dict() for a in self.answers]
        return data


class PlayerAnswer(db.Model):
    __tablename__ = 'player_answer'
    id = db.Column(db.Integer, primary_key=True)
    player_session_id = db.Column(db.Integer, db.ForeignKey('player_session.id'), nullable=False, index=True)
    question_id = db.Column(db.Integer, db.ForeignKey('question.id'), nullable=False, index=True)
    question_index = db.Column(db.Integer, nullable=False)
    selected_answer = db.Column(db.Integer, nullable=False)
    is_correct = db.Column(db.Boolean, nullable=False, default=False)
    points_earned = db.Column(db.Integer, nullable=False, default=0)
    response_time = db.Column(db.Integer, nullable=False)  # ms, server measured
    client_time = db.Column(db.BigInteger, nullable=True)  # ms, as reported by the client
    answered_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    player_session = db.relationship('PlayerSession', back_populates='answers')
    question = db.relationship('Question')

    __table_args__ = (
        db.UniqueConstraint('player_session_id', 'question_id', name='uq_player_answer_question'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'player_session_id': self.player_session_id,
            'question_id': self.question_id,
            'question_index': self.question_index,
            'selected_answer': self.selected_answer,
            'is_correct': self.is_correct,
            'points_earned': self.points_earned,
            'response_time': self.response_time,
            'answered_at': _iso(self.answered_at),
        }
