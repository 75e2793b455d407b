import os
import random
import sys
import pytest

# Ensure the backend root (containing the `quizroom` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from quizroom import create_app, socketio
from quizroom.content import ContentCatalog
from quizroom.models import ContentSet, Question
from quizroom.services.rounds import RoomRegistry, RoundStateMachine, ScheduledCall


TRIVIA = ContentSet(
    content_id='trivia',
    title='Trivia',
    questions=(
        Question(prompt='How many legs does a spider have?', correct_answer=8),
        Question(prompt='In what year did Apollo 11 land?', correct_answer=1969),
    ),
    round_duration_seconds=20,
)

SINGLE = ContentSet(
    content_id='single',
    title='Single question',
    questions=(Question(prompt='Guess the number', correct_answer=50),),
    round_duration_seconds=5,
)


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SOCKETIO_NAMESPACE = '/ws'
    CORS_ORIGINS = []
    CONTENT_DIR = None
    DEFAULT_CONTENT_ID = 'trivia'
    DEFAULT_SCORING_MODE = 'closest'
    ROOM_GRACE_PERIOD_SEC = 5
    MAX_NAME_LENGTH = 32
    MAX_ANSWER_LENGTH = 64
    TIMER_HEARTBEAT_SEC = 0


class ManualScheduler:
    """Scheduler double: nothing fires until a test says so."""

    def __init__(self):
        self.pending = []
        self.history = []

    def schedule(self, delay, callback, *args, label=''):
        call = ScheduledCall(delay, label)
        self.pending.append((call, callback, args))
        self.history.append((call, callback, args))
        return call

    def live(self):
        return [call for call, _, _ in self.pending if not call.cancelled and not call.fired]

    def fire_pending(self):
        """Fire every call that is still live, like real timers expiring."""
        pending, self.pending = self.pending, []
        for call, callback, args in pending:
            if call.cancelled or call.fired:
                continue
            call.fired = True
            callback(*args)

    def force(self, call):
        """Run a call's callback even if cancelled: a timer that woke up late."""
        for scheduled, callback, args in self.history:
            if scheduled is call:
                scheduled.fired = True
                callback(*args)
                return
        raise AssertionError(f'{call!r} was never scheduled')


class RecordingGateway:
    def __init__(self, registry):
        self.registry = registry
        self.sent = []
        self.closed = []

    def to_host(self, room_code, event, payload):
        room = self.registry.lookup(room_code)
        self.sent.append((room.host_identity, event, payload))

    def to_room(self, room_code, event, payload):
        self.sent.append((f'room:{room_code}', event, payload))

    def to_connection(self, identity, event, payload):
        self.sent.append((identity, event, payload))

    def enroll(self, identity, room_code):
        pass

    def close(self, room_code):
        self.closed.append(room_code)

    def events(self, event, target=None):
        return [
            payload for (to, name, payload) in self.sent
            if name == event and (target is None or to == target)
        ]


@pytest.fixture()
def scheduler():
    return ManualScheduler()


@pytest.fixture()
def catalog():
    return ContentCatalog(preloaded={'trivia': TRIVIA, 'single': SINGLE})


@pytest.fixture()
def registry(catalog):
    return RoomRegistry(catalog, default_content_id='trivia', rng=random.Random(1234))


@pytest.fixture()
def gateway(registry):
    return RecordingGateway(registry)


@pytest.fixture()
def engine(registry, gateway, scheduler):
    return RoundStateMachine(registry, gateway, scheduler, grace_period_sec=5)


@pytest.fixture()
def flask_app(scheduler, catalog):
    application = create_app(TestConfig, scheduler=scheduler, catalog=catalog)
    with application.app_context():
        yield application


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def make_sio_client(flask_app):
    clients = []

    def _make():
        test_client = socketio.test_client(
            flask_app,
            flask_test_client=flask_app.test_client(),
            namespace='/ws'
        )
        clients.append(test_client)
        return test_client

    yield _make
    for test_client in clients:
        try:
            if test_client.is_connected('/ws'):
                test_client.disconnect(namespace='/ws')
        except RuntimeError:
            pass


def payloads(packets, event):
    """Payloads of ``event`` among packets from ``get_received``."""
    return [pkt['args'][0] for pkt in packets if pkt['name'] == event]
