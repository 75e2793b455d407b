from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO
import click
from config import Config

# Handlers for one connection run in order on that connection's thread
socketio = SocketIO(async_mode=None, async_handlers=False)

def create_app(config_class=Config, scheduler=None, catalog=None):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []

    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from quizroom.content import ContentCatalog
    from quizroom.models import ScoringMode
    from quizroom.services.rounds import (
        BroadcastGateway,
        RoomRegistry,
        RoundScheduler,
        RoundStateMachine,
    )

    cfg = flask_app.config
    if catalog is None:
        catalog = ContentCatalog(cfg.get('CONTENT_DIR'), logger=flask_app.logger)
    registry = RoomRegistry(
        catalog,
        default_content_id=cfg.get('DEFAULT_CONTENT_ID'),
        default_scoring_mode=ScoringMode(cfg.get('DEFAULT_SCORING_MODE', 'closest')),
        max_name_length=int(cfg.get('MAX_NAME_LENGTH', 32)),
        logger=flask_app.logger,
    )
    if scheduler is None:
        scheduler = RoundScheduler(
            socketio,
            logger=flask_app.logger,
            heartbeat_sec=int(cfg.get('TIMER_HEARTBEAT_SEC', 0)),
        )
    gateway = BroadcastGateway(socketio, registry, namespace=cfg.get('SOCKETIO_NAMESPACE', '/ws'))
    flask_app.extensions['quizroom'] = RoundStateMachine(
        registry,
        gateway,
        scheduler,
        grace_period_sec=cfg.get('ROOM_GRACE_PERIOD_SEC', 30),
        max_answer_length=int(cfg.get('MAX_ANSWER_LENGTH', 64)),
        logger=flask_app.logger,
    )

    # Import and register blueprints here
    from quizroom.main import main
    flask_app.register_blueprint(main)

    from quizroom.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api')

    # Register Socket.IO event handlers
    from quizroom.socketio_events import register_socketio_handlers
    register_socketio_handlers(namespace=cfg.get('SOCKETIO_NAMESPACE', '/ws'))

    @click.command('content-check')
    def content_check_command():
        """Loads every content set and reports which ones are valid."""
        from quizroom.exceptions import QuizRoomError
        failures = 0
        for content_id in catalog.available():
            try:
                content = catalog.get(content_id)
            except QuizRoomError as exc:
                failures += 1
                click.echo(f'FAIL {content_id}: {exc}')
                continue
            click.echo(f'ok   {content_id}: {len(content.questions)} questions, '
                       f'{content.round_duration_seconds}s per round')
        if failures:
            raise click.ClickException(f'{failures} content set(s) failed to load')

    flask_app.cli.add_command(content_check_command)

    return flask_app
