from flask import Blueprint, request, jsonify
from flask_login import login_user, logout_user, login_required, current_user
from quizlive import db
from quizlive.models import User

main = Blueprint('main', __name__)

ROLES = ('teacher', 'student')


@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the QuizLive game server!'})


@main.route('/auth/register', methods=['POST'])
def register():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    if not email or not password:
        return jsonify({'error': 'Missing email or password'}), 400
    role = data.get('role') or 'teacher'
    if role not in ROLES:
        return jsonify({'error': f"role must be one of {', '.join(ROLES)}"}), 400

    if User.query.filter_by(email=email).first():
        return jsonify({'error': 'Email already registered'}), 409

    user = User(email=email, full_name=(data.get('full_name') or '').strip(), role=role)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    login_user(user)

    return jsonify(user.to_dict()), 201


@main.route('/auth/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    user = User.query.filter_by(email=(data.get('email') or '').strip().lower()).first()
    if user and user.check_password(data.get('password') or ''):
        login_user(user, remember=True)
        return jsonify(user.to_dict())
    return jsonify({'error': 'Invalid email or password'}), 401


@main.route('/auth/me')
@login_required
def me():
    return jsonify(current_user.to_dict())


@main.route('/auth/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({'message': 'Logged out successfully.'})
