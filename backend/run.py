from quizlive import create_app, socketio
from quizlive.services.sessions.scheduler import resume_timers

app = create_app()

if __name__ == '__main__':
    if app.config.get('RESUME_TIMERS_ON_START'):
        resume_timers(app)
    # Use SocketIO server to enable websockets in dev
    socketio.run(app, debug=True)
