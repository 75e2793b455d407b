import os

basedir = os.path.abspath(os.path.dirname(__file__))

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SOCKETIO_NAMESPACE = os.environ.get('SOCKETIO_NAMESPACE', '/ws')
    CORS_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            'CORS_ORIGINS',
            'http://localhost:5173,http://127.0.0.1:5173,http://localhost:5174,http://127.0.0.1:5174',
        ).split(',')
        if origin.strip()
    ]
    # Content sets live as <CONTENT_DIR>/<content_id>.json
    CONTENT_DIR = os.environ.get('CONTENT_DIR') or os.path.join(basedir, 'content')
    DEFAULT_CONTENT_ID = os.environ.get('DEFAULT_CONTENT_ID', 'general')
    # closest | buzzer
    DEFAULT_SCORING_MODE = os.environ.get('DEFAULT_SCORING_MODE', 'closest')
    # Seconds a room survives after its host disconnects
    ROOM_GRACE_PERIOD_SEC = int(os.environ.get('ROOM_GRACE_PERIOD_SEC', '30'))
    MAX_NAME_LENGTH = int(os.environ.get('MAX_NAME_LENGTH', '32'))
    MAX_ANSWER_LENGTH = int(os.environ.get('MAX_ANSWER_LENGTH', '64'))
    # Optional: heartbeat interval for timer worker logs (sec). 0 disables.
    TIMER_HEARTBEAT_SEC = int(os.environ.get('TIMER_HEARTBEAT_SEC', '0'))
