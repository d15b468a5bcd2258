from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required, current_user
from quizlive import db
from quizlive.models import Quiz, Question, QUESTION_TYPES
from quizlive.services.sessions.errors import (
    Conflict, Forbidden, NotFound, SessionError, ValidationError, error_payload,
)

quizzes = Blueprint('quizzes', __name__)

# Authoring defaults for a new question
DEFAULT_TIME_LIMIT = 30
DEFAULT_POINTS = 100
TRUE_FALSE_OPTIONS = ['True', 'False']


@quizzes.errorhandler(SessionError)
def handle_session_error(exc):
    body, status = error_payload(exc)
    return jsonify(body), status


def _require_teacher():
    if not current_user.is_teacher:
        raise Forbidden('Only teachers can manage quizzes')


def _own_quiz(quiz_id: int) -> Quiz:
    quiz = db.session.get(Quiz, quiz_id)
    if not quiz or quiz.owner_id != current_user.id:
        raise NotFound('Quiz not found', quiz_id=quiz_id)
    return quiz


def _int_field(raw, name, default, minimum, position):
    value = raw.get(name, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ValidationError(f'Question {position + 1}: {name} must be an integer >= {minimum}', field=name)
    return value


def parse_question(raw, position: int) -> Question:
    if not isinstance(raw, dict):
        raise ValidationError(f'Question {position + 1} must be an object')
    text = (raw.get('question_text') or '').strip()
    if not text:
        raise ValidationError(f'Question {position + 1}: question_text is required', field='question_text')

    question_type = raw.get('question_type') or 'multiple_choice'
    if question_type not in QUESTION_TYPES:
        raise ValidationError(f'Question {position + 1}: unknown question_type {question_type!r}', field='question_type')

    options = raw.get('options')
    if options is None and question_type == 'true_false':
        options = list(TRUE_FALSE_OPTIONS)
    if not isinstance(options, list) or not all(isinstance(o, str) and o.strip() for o in options):
        raise ValidationError(f'Question {position + 1}: options must be non-empty strings', field='options')
    if len(options) < 2:
        raise ValidationError(f'Question {position + 1}: at least 2 options are required', field='options')
    if question_type == 'true_false' and len(options) != 2:
        raise ValidationError(f'Question {position + 1}: true/false questions take exactly 2 options', field='options')

    correct = raw.get('correct_answer', 0)
    if isinstance(correct, bool) or not isinstance(correct, int) or not 0 <= correct < len(options):
        raise ValidationError(f'Question {position + 1}: correct_answer out of range', field='correct_answer')

    return Question(
        position=position,
        question_text=text,
        question_type=question_type,
        options=[o.strip() for o in options],
        correct_answer=correct,
        time_limit=_int_field(raw, 'time_limit', DEFAULT_TIME_LIMIT, 1, position),
        points=_int_field(raw, 'points', DEFAULT_POINTS, 0, position),
        image_url=raw.get('image_url') or None,
        video_url=raw.get('video_url') or None,
    )


def parse_questions(raw_questions):
    if not isinstance(raw_questions, list) or not raw_questions:
        raise ValidationError('At least one question is required', field='questions')
    return [parse_question(raw, i) for i, raw in enumerate(raw_questions)]


@quizzes.route('', methods=['GET'])
@login_required
def list_quizzes():
    _require_teacher()
    own = current_user.quizzes.order_by(Quiz.created_at.desc(), Quiz.id.desc()).all()
    return jsonify([q.to_dict() for q in own])


@quizzes.route('', methods=['POST'])
@login_required
def create_quiz():
    _require_teacher()
    data = request.get_json(silent=True) or {}
    title = (data.get('title') or '').strip()
    if not title:
        raise ValidationError('Title is required', field='title')
    quiz = Quiz(
        title=title,
        description=(data.get('description') or '').strip(),
        owner_id=current_user.id,
    )
    quiz.questions = parse_questions(data.get('questions'))
    db.session.add(quiz)
    db.session.commit()
    current_app.logger.info(f"[quiz-create] quiz={quiz.id} owner={current_user.id} questions={len(quiz.questions)}")
    return jsonify(quiz.to_dict()), 201


@quizzes.route('/<int:quiz_id>', methods=['GET'])
@login_required
def get_quiz(quiz_id):
    return jsonify(_own_quiz(quiz_id).to_dict())


@quizzes.route('/<int:quiz_id>', methods=['PUT'])
@login_required
def update_quiz(quiz_id):
    quiz = _own_quiz(quiz_id)
    if quiz.has_open_session():
        raise Conflict('Quiz cannot change while a game session is open', quiz_id=quiz.id)
    data = request.get_json(silent=True) or {}

    if 'title' in data:
        title = (data.get('title') or '').strip()
        if not title:
            raise ValidationError('Title is required', field='title')
        quiz.title = title
    if 'description' in data:
        quiz.description = (data.get('description') or '').strip()
    if 'questions' in data:
        # Finished sessions keep answers that point at the current questions
        if quiz.sessions:
            raise Conflict('Questions cannot be replaced once the quiz has been played', quiz_id=quiz.id)
        quiz.questions = parse_questions(data.get('questions'))

    db.session.commit()
    return jsonify(quiz.to_dict())


@quizzes.route('/<int:quiz_id>', methods=['DELETE'])
@login_required
def delete_quiz(quiz_id):
    quiz = _own_quiz(quiz_id)
    if quiz.has_open_session():
        raise Conflict('End the open game session before deleting this quiz', quiz_id=quiz.id)
    db.session.delete(quiz)
    db.session.commit()
    current_app.logger.info(f"[quiz-delete] quiz={quiz_id} owner={current_user.id}")
    return jsonify({'message': 'Quiz deleted'})
