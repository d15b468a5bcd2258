from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
socketio = SocketIO(async_mode=None)


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from quizlive.main import main
    flask_app.register_blueprint(main)

    from quizlive.api.quizzes import quizzes
    flask_app.register_blueprint(quizzes, url_prefix='/api/quizzes')

    from quizlive.api.sessions import sessions
    flask_app.register_blueprint(sessions, url_prefix='/api/sessions')

    # Importing here ensures the handlers bind to the initialized socketio instance
    from quizlive.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    from quizlive.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'Login required', 'code': 'unauthorized'}), 401

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from quizlive.models import Quiz, Question
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            teacher = User(email='teacher@example.com', full_name='Demo Teacher', role='teacher')
            teacher.set_password('password')
            db.session.add(teacher)
            db.session.flush()

            quiz = Quiz(title='Capitals', description='Warm-up quiz', owner_id=teacher.id)
            quiz.questions = [
                Question(position=0, question_text='Capital of France?', question_type='multiple_choice',
                         options=['Berlin', 'Madrid', 'Paris', 'Rome'], correct_answer=2),
                Question(position=1, question_text='Canberra is the capital of Australia.',
                         question_type='true_false', options=['True', 'False'], correct_answer=0,
                         time_limit=20),
            ]
            db.session.add(quiz)
            db.session.commit()
            print('Database has been reset and seeded!')

    @click.command('advance-overdue')
    def advance_overdue_command():
        """Advances every active session whose question deadline has passed."""
        from quizlive.services.sessions.scheduler import advance_overdue
        count = advance_overdue(flask_app)
        print(f'Advanced {count} overdue session(s).')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(advance_overdue_command)

    return flask_app
