import os
import sys
import pytest

# Ensure the backend root (containing the `guessroom` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from guessroom import create_app, db, socketio
from guessroom.services.rooms import RoomManager
from guessroom.services.rooms.content import StaticContentProvider
from guessroom.services.rooms.state import RoomSettings


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    PERSIST_ROOMS = True
    SHUFFLE_CONTENT = False
    ROUNDS_PER_GAME = 3
    MIN_PLAYERS = 2
    MAX_PLAYERS = 4


class ManualClock:
    """Wall clock stand-in; ``sleep`` just moves time forward."""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds

    def sleep(self, seconds):
        self.advance(seconds)


class ManualSpawner:
    """Collects timer workers instead of starting threads."""

    def __init__(self):
        self.tasks = []

    def __call__(self, target, *args):
        self.tasks.append((target, args))

    def run_pending(self):
        # Only what is queued now; firing a round timer queues the next one.
        pending, self.tasks = self.tasks, []
        for target, args in pending:
            target(*args)
        return len(pending)


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import guessroom.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


@pytest.fixture()
def clock():
    return ManualClock()


@pytest.fixture()
def spawner():
    return ManualSpawner()


@pytest.fixture()
def manager(clock, spawner):
    return RoomManager(
        content_provider=StaticContentProvider(),
        spawn=spawner,
        sleep=clock.sleep,
        clock=clock,
        default_settings=RoomSettings(min_players=2, max_players=4, round_duration_seconds=30, rounds=3),
    )


@pytest.fixture()
def room_id(manager):
    return manager.create_room('Test room')['id']
